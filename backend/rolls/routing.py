from django.urls import path
from .consumers import RollsConsumer

websocket_urlpatterns = [
    path("ws/rolls/<uuid:round_id>/", RollsConsumer.as_asgi()),
]
