# rolls/urls.py
from django.urls import path
from . import views

urlpatterns = [
    path("open/", views.open_round, name="rolls-open"),
    path("history/", views.round_history, name="rolls-history"),
    path("verify/", views.verify_record, name="rolls-verify"),
    path("round/<uuid:round_id>/", views.round_state, name="rolls-state"),
    path("round/<uuid:round_id>/roll/", views.submit_roll, name="rolls-roll"),
    path("round/<uuid:round_id>/cashout/", views.cash_out, name="rolls-cashout"),
    path("round/<uuid:round_id>/settle/", views.settle, name="rolls-settle"),
    path("round/<uuid:round_id>/verification/", views.verification, name="rolls-verification"),
]
