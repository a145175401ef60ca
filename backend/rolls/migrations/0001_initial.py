from decimal import Decimal
import uuid

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='RollSettings',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('house_edge', models.DecimalField(decimal_places=4, default=Decimal('0.0200'), max_digits=5, validators=[django.core.validators.MinValueValidator(Decimal('0.0000')), django.core.validators.MaxValueValidator(Decimal('0.5000'))])),
                ('explosion_skew', models.DecimalField(decimal_places=4, default=Decimal('0.0000'), max_digits=6, validators=[django.core.validators.MinValueValidator(Decimal('0.0000')), django.core.validators.MaxValueValidator(Decimal('10.0000'))])),
                ('default_chain_length', models.PositiveIntegerField(default=5, validators=[django.core.validators.MinValueValidator(1)])),
                ('max_chain_length', models.PositiveIntegerField(default=50, validators=[django.core.validators.MinValueValidator(1), django.core.validators.MaxValueValidator(1000)])),
                ('min_wager', models.DecimalField(decimal_places=2, default=Decimal('1.00'), max_digits=14)),
                ('max_wager', models.DecimalField(decimal_places=2, default=Decimal('100000.00'), max_digits=14)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
        ),
        migrations.CreateModel(
            name='Round',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('stake', models.DecimalField(decimal_places=2, max_digits=14, validators=[django.core.validators.MinValueValidator(Decimal('0.01'))])),
                ('chain_length', models.PositiveIntegerField()),
                ('seed_commitment', models.CharField(db_index=True, max_length=64)),
                ('commitment_length', models.PositiveIntegerField()),
                ('server_seed', models.CharField(max_length=64)),
                ('house_edge', models.DecimalField(decimal_places=4, max_digits=5)),
                ('explosion_skew', models.DecimalField(decimal_places=4, max_digits=6)),
                ('status', models.CharField(choices=[('active', 'Active'), ('exploded', 'Exploded'), ('cashed', 'Cashed')], db_index=True, default='active', max_length=16)),
                ('end_reason', models.CharField(blank=True, choices=[('exploded', 'Exploded'), ('cashout', 'Cashed out by player'), ('exhausted', 'All rolls used'), ('abandoned', 'Abandoned, cashed out'), ('forfeited', 'Abandoned, forfeited')], default='', max_length=16)),
                ('roll_index', models.PositiveIntegerField(default=0)),
                ('running_multiplier', models.DecimalField(decimal_places=4, default=Decimal('0.0000'), max_digits=18)),
                ('payout_amount', models.DecimalField(decimal_places=2, default=Decimal('0.00'), max_digits=14)),
                ('version', models.PositiveIntegerField(default=0)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('last_action_at', models.DateTimeField(auto_now_add=True)),
                ('finished_at', models.DateTimeField(blank=True, null=True)),
                ('settled_at', models.DateTimeField(blank=True, null=True)),
                ('user', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='roll_rounds', to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['user', 'status'], name='round_user_status_idx'),
                    models.Index(fields=['status', 'last_action_at'], name='round_status_idle_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RollRecord',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('index', models.PositiveIntegerField()),
                ('value', models.DecimalField(decimal_places=4, max_digits=10)),
                ('multiplier_after', models.DecimalField(decimal_places=4, max_digits=18)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('round', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='rolls', to='rolls.round')),
            ],
            options={
                'ordering': ['index'],
                'unique_together': {('round', 'index')},
            },
        ),
    ]
