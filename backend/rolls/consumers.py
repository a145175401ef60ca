from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .abuse import AbuseError, hit_rate_limit, step_rate_limit
from .engine import RoundEngine
from .exceptions import RoundError, RoundNotFound
from .models import Round

logger = logging.getLogger(__name__)


class RollsConsumer(AsyncJsonWebsocketConsumer):
    """
    Reveals one roll per "roll" message for the round named in the URL.
    Disconnecting leaves the round Active; idle rounds are swept by the
    expire_idle_rounds command under the configured abandon policy.
    """

    engine = RoundEngine()

    # ===============================
    # CONNECTION
    # ===============================

    async def connect(self):
        await self.accept()

        self.user = self.scope.get("user")
        self.round_id = self.scope["url_route"]["kwargs"]["round_id"]

        if self.user is None or not self.user.is_authenticated:
            await self.send_error("not_authenticated", "Login required")
            await self.close(code=4001)
            return

        try:
            state = await self.round_state()
        except RoundError as exc:
            await self.send_error(exc.code, str(exc))
            await self.close(code=4004)
            return

        await self.send_json({"type": "joined", **state})

    async def disconnect(self, close_code):
        logger.info(f"Socket for round {getattr(self, 'round_id', None)} closed ({close_code})")

    # ===============================
    # MESSAGE ROUTER
    # ===============================

    async def receive_json(self, content, **kwargs):
        msg_type = content.get("type")

        try:
            if msg_type == "ping":
                await self.send_json({"type": "pong"})
            elif msg_type == "state":
                await self.send_json({"type": "state", **(await self.round_state())})
            elif msg_type == "roll":
                outcome = await self.process_roll()
                await self.send_json({"type": "roll_result", **outcome})
            elif msg_type == "cashout":
                settlement = await self.process_cashout()
                await self.send_json({"type": "cashout_result", **settlement})
            else:
                await self.send_error("invalid_message_type", "Unknown message type")
        except RoundError as exc:
            await self.send_error(exc.code, str(exc))
        except AbuseError as exc:
            await self.send_error("rate_limited", str(exc))

    # ===============================
    # DB WORK
    # ===============================

    @database_sync_to_async
    def round_state(self):
        try:
            rnd = Round.objects.get(id=self.round_id, user=self.user)
        except Round.DoesNotExist:
            raise RoundNotFound("Round not found")
        return {
            "round_id": str(rnd.id),
            "status": rnd.status,
            "roll_index": rnd.roll_index,
            "chain_length": rnd.chain_length,
            "running_multiplier": str(rnd.running_multiplier),
            "commitment": rnd.commitment.to_dict(),
        }

    @database_sync_to_async
    def process_roll(self):
        hit_rate_limit(step_rate_limit(self.user.id, self.round_id))
        return self.engine.step(self.round_id, user=self.user).to_dict()

    @database_sync_to_async
    def process_cashout(self):
        return self.engine.cash_out(self.round_id, user=self.user).to_dict()

    # ===============================
    # HELPERS
    # ===============================

    async def send_error(self, code, message):
        await self.send_json({
            "type": "error",
            "code": code,
            "message": message
        })
