"""
HTTP API for the wallet adapter.
"""

from __future__ import annotations

import contextlib
import json
from typing import Any

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from mnwallet.adapter import WalletAdapter
from mnwallet.config import Settings
from mnwallet.errors import (
    CapabilityUnavailableError,
    InvalidAmountError,
    InvalidRecipientError,
    ProviderNotFoundError,
    UpstreamUnavailableError,
)
from mnwallet.miner import jsonable
from mnwallet.models import SendRequest
from mnwallet.session import WalletSessionCache

_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (InvalidRecipientError, 400),
    (InvalidAmountError, 400),
    (CapabilityUnavailableError, 501),
    (UpstreamUnavailableError, 502),
    (ProviderNotFoundError, 503),
)


def error_response(error: Exception, status: int | None = None) -> web.Response:
    """Typed error JSON: ``{"error": message, "type": kind}``."""
    if status is None:
        status = next((code for kind, code in _ERROR_STATUS if isinstance(error, kind)), 500)
    return web.json_response({"error": str(error), "type": type(error).__name__}, status=status)


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    cause = first.get("ctx", {}).get("error")
    if cause is not None:
        return str(cause)
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}"


class WalletApiServer:
    def __init__(self, settings: Settings, sessions: WalletSessionCache[WalletAdapter]) -> None:
        self.settings = settings
        self.sessions = sessions
        self.app = web.Application()
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None
        self._stopping = False
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/healthz", self._handle_healthz)
        self.app.router.add_get("/readyz", self._handle_readyz)
        self.app.router.add_get("/state", self._handle_state)
        self.app.router.add_get("/serialize-state", self._handle_serialize_state)
        self.app.router.add_get("/address", self._handle_address)
        self.app.router.add_get("/balance", self._handle_balance)
        self.app.router.add_get("/wallet-debug", self._handle_wallet_debug)
        self.app.router.add_post("/api/send", self._handle_send)

    async def _handle_healthz(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _handle_readyz(self, _request: web.Request) -> web.Response:
        try:
            await self.sessions.get()
        except Exception as e:
            return web.json_response({"status": "not_ready", "error": str(e)}, status=503)
        return web.json_response({"status": "ready"})

    async def _handle_state(self, _request: web.Request) -> web.Response:
        try:
            wallet = await self.sessions.get()
            state = await wallet.snapshot()
        except Exception as e:
            logger.error(f"/state failed: {e}")
            return error_response(e)
        return web.json_response(jsonable(state))

    async def _handle_serialize_state(self, _request: web.Request) -> web.Response:
        try:
            wallet = await self.sessions.get()
            tree, text = await wallet.serialized_state()
        except Exception as e:
            logger.error(f"/serialize-state failed: {e}")
            return error_response(e)
        address = wallet.miner.mine_address(tree, text)
        return web.json_response(
            {
                "address": address or "",
                "via": "serializeState" if address else "",
                "state": jsonable(tree) if tree is not None else text,
            }
        )

    async def _handle_address(self, _request: web.Request) -> web.Response:
        try:
            wallet = await self.sessions.get()
            address, via = await wallet.find_address()
        except Exception as e:
            logger.error(f"/address failed: {e}")
            return error_response(e)
        if not address:
            return web.json_response(
                {"error": "No mn_shield-addr_ address found", "type": "AddressNotFound"},
                status=404,
            )
        return web.json_response({"address": address, "via": via})

    async def _handle_balance(self, _request: web.Request) -> web.Response:
        try:
            wallet = await self.sessions.get()
            report = await wallet.get_balance()
        except Exception as e:
            logger.error(f"/balance failed: {e}")
            return error_response(e)
        return web.json_response(jsonable(report.to_dict()))

    async def _handle_wallet_debug(self, _request: web.Request) -> web.Response:
        try:
            wallet = await self.sessions.get()
        except Exception as e:
            return error_response(e)
        return web.json_response(wallet.describe())

    async def _handle_send(self, request: web.Request) -> web.Response:
        try:
            body: Any = await request.json()
        except json.JSONDecodeError:
            return web.json_response({"ok": False, "error": "invalid JSON body"}, status=400)
        if not isinstance(body, dict):
            return web.json_response(
                {"ok": False, "error": "body must be a JSON object"}, status=400
            )

        try:
            send_request = SendRequest.model_validate(body)
        except ValidationError as e:
            return web.json_response({"ok": False, "error": _validation_message(e)}, status=400)

        try:
            wallet = await self.sessions.get()
            result = await wallet.send(send_request.recipient, send_request.amount)
        except (InvalidRecipientError, InvalidAmountError) as e:
            logger.warning(f"Send rejected: {e}")
            return web.json_response({"ok": False, "error": str(e)}, status=400)
        except Exception as e:
            logger.error(f"Send failed: {e}")
            return web.json_response({"ok": False, "error": str(e)}, status=500)

        response: dict[str, Any] = {"ok": True, "txId": result.tx_id, "strategy": result.strategy}
        if result.change_value is not None:
            response["change"] = str(result.change_value)
        return web.json_response(response)

    async def start(self) -> None:
        logger.info(f"Starting wallet API on {self.settings.host}:{self.settings.port}")

        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(self.runner, self.settings.host, self.settings.port)
        await self.site.start()

        logger.info(f"Wallet API running at http://{self.settings.host}:{self.settings.port}")

    async def stop(self) -> None:
        if self._stopping:
            return
        self._stopping = True

        logger.info("Stopping wallet API...")

        if self.site:
            with contextlib.suppress(RuntimeError):
                await self.site.stop()
            self.site = None

        if self.runner:
            with contextlib.suppress(RuntimeError):
                await self.runner.cleanup()
            self.runner = None

        await self.sessions.close()
