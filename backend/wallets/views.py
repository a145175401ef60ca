from django.conf import settings
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .ledger import ensure_wallet
from .models import WalletTransaction
from .serializers import WalletSerializer, WalletTransactionSerializer


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def wallet_detail(request):
    wallet = ensure_wallet(request.user)
    txs = WalletTransaction.objects.filter(user=request.user).order_by("-created_at")[:20]

    data = WalletSerializer(wallet).data
    data["starting_balance"] = str(settings.WALLET_STARTING_BALANCE)
    data["transactions"] = WalletTransactionSerializer(txs, many=True).data
    return Response(data)
