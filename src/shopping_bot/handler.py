"""
AWS Lambda handler for LINE Messaging API webhooks -> shopping list bot.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from collections.abc import Callable
from typing import Any

from . import commands, store
from .config import Settings, load_settings
from .line import LineClient, verify_signature

logger = logging.getLogger(__name__)

WAIT_TEXT = "はい！"
DELETE_ALL_WAIT_TEXT = "はい！時間かかるからちょっと待っててね。"
DELETED_TEXT = "消したよ🗑"
DELETED_ALL_TEXT = "全部消したよ"
LIST_FAILED_TEXT = "ごめんね、リストを取得できなかったよ。"
DELETE_FAILED_TEXT = "ごめんね、消せなかったよ。もう一度送ってね。"
DELETE_ALL_FAILED_TEXT = "ごめんね、全部消すのに失敗したよ。もう一度送ってね。"
TABLE_LOST_TEXT = (
    "⚠️ リストを作り直せませんでした。お手数ですが管理者にお問い合わせください。"
)


def _configure_logging() -> None:
    level_name = (os.getenv("LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    logger.setLevel(level)
    root = logging.getLogger()
    if root.level and root.level > level:
        root.setLevel(level)


def _rid(context: Any) -> str | None:
    return getattr(context, "aws_request_id", None)


def _log(msg: str, **fields: Any) -> None:
    try:
        rec = {"msg": msg, **fields}
        logger.info(json.dumps(rec, ensure_ascii=False))
    except (TypeError, ValueError):
        # Fallback to plain log
        logger.info("%s | %s", msg, fields)


def _response(status: int, body: dict[str, Any]) -> dict[str, Any]:
    return {
        "statusCode": status,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body, ensure_ascii=False),
    }


def _raw_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or ""
    if event.get("isBase64Encoded"):
        return base64.b64decode(body)
    if isinstance(body, str):
        return body.encode("utf-8")
    return bytes(body)


def _get_header(event: dict[str, Any], name: str) -> str | None:
    headers = event.get("headers") or {}
    for k, v in headers.items():
        if k.lower() == name.lower():
            return v
    return None


def _send(rid: str | None, what: str, fn: Callable[[], Any]) -> bool:
    """Run one LINE call; failures are logged and reported as False."""
    try:
        fn()
        return True
    except Exception as e:
        logger.exception("LINE %s failed", what)
        _log("line_error", rid=rid, call=what, error=str(e))
        return False


class _Conversation:
    """One inbound event plus the clients needed to answer it."""

    def __init__(self, settings: Settings, line: LineClient, event: dict[str, Any], rid: str | None):
        self.settings = settings
        self.line = line
        self.event = event
        self.rid = rid
        self.user_id: str = event["source"]["userId"]

    def reply(self, text: str) -> bool:
        token = self.event.get("replyToken") or ""
        return _send(self.rid, "reply", lambda: self.line.reply_message(token, text))

    def push(self, to: str, text: str) -> bool:
        return _send(self.rid, "push", lambda: self.line.push_message(to, text))

    # ----- Event types -----
    def on_follow(self) -> str:
        self.reply(commands.HOW_TO_USE)
        return "follow"

    def on_unfollow(self) -> str:
        # Empty push as a workaround for unfollow delivery; LINE usually rejects it.
        self.push(self.user_id, "")
        return "unfollow"

    def on_message(self) -> str:
        message = self.event.get("message") or {}
        text = message.get("text")
        if message.get("type") != "text" or not isinstance(text, str):
            _log("ignored_non_text_message", rid=self.rid, messageType=message.get("type"))
            return "ignored"
        cmd = commands.classify(text)
        _log("command", rid=self.rid, cmd=cmd["cmd"], item=cmd.get("item"))
        getattr(self, f"cmd_{cmd['cmd']}")(cmd)
        return cmd["cmd"]

    # ----- Commands -----
    def cmd_show(self, _cmd: dict[str, Any]) -> None:
        self.push(self.user_id, WAIT_TEXT)
        try:
            items = store.list_items(self.settings.table_name)
        except Exception as e:
            logger.exception("scan failed")
            _log("store_error", rid=self.rid, op="scan", error=str(e))
            self.reply(LIST_FAILED_TEXT)
            return
        _log("scan_ok", rid=self.rid, count=len(items))
        self.reply(commands.render_list(items))

    def cmd_help(self, _cmd: dict[str, Any]) -> None:
        self.reply(commands.HOW_TO_USE)

    def cmd_delete_one(self, cmd: dict[str, Any]) -> None:
        try:
            store.delete_item(self.settings.table_name, cmd["item"])
        except Exception as e:
            logger.exception("delete_item failed")
            _log("store_error", rid=self.rid, op="delete_item", item=cmd["item"], error=str(e))
            self.reply(DELETE_FAILED_TEXT)
            return
        self.reply(DELETED_TEXT)

    def cmd_delete_all(self, _cmd: dict[str, Any]) -> None:
        self.push(self.user_id, DELETE_ALL_WAIT_TEXT)
        t0 = time.time()
        try:
            store.delete_all_items(
                self.settings.table_name,
                wait_delay_seconds=self.settings.table_wait_delay_seconds,
                wait_max_attempts=self.settings.table_wait_max_attempts,
            )
        except store.TableRecreateError as e:
            _log("table_lost", rid=self.rid, table=e.table_name, error=str(e.cause))
            self.reply(TABLE_LOST_TEXT)
            return
        except Exception as e:
            logger.exception("delete_all_items failed")
            _log("store_error", rid=self.rid, op="delete_all", error=str(e))
            self.reply(DELETE_ALL_FAILED_TEXT)
            return
        _log("delete_all_ok", rid=self.rid, ms=int((time.time() - t0) * 1000))
        self.reply(DELETED_ALL_TEXT)

    def cmd_add(self, cmd: dict[str, Any]) -> None:
        item = cmd["item"]
        try:
            store.add_item(self.settings.table_name, item)
        except Exception as e:
            logger.exception("put_item failed")
            _log("store_error", rid=self.rid, op="put_item", item=item, error=str(e))
            self.reply(commands.shorten(f"ごめんね、{item}を追加できなかったよ。"))
            return
        # The add notice goes to the shared notify target (e.g. a group), not a reply.
        self.push(
            self.settings.notify_id or self.user_id,
            commands.shorten(f"{item}が追加されたよ"),
        )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    _configure_logging()
    start_ts = time.time()
    rid = _rid(context)

    # Any failure below still acks with 200 so LINE does not redeliver the event.
    try:
        settings = load_settings()
        raw = _raw_body(event)

        # 1) Verify LINE signature when a channel secret is configured
        if settings.channel_secret:
            signature = _get_header(event, "X-Line-Signature")
            if not verify_signature(settings.channel_secret, raw, signature):
                _log("auth_failed", rid=rid, reason="signature_mismatch")
                return _response(401, {"error": "unauthorized"})

        # 2) Parse body; only the first event of a batch is handled
        payload = json.loads(raw.decode("utf-8") or "{}")
        events = payload.get("events") if isinstance(payload, dict) else None
        if not events:
            _log("ignored_no_events", rid=rid)
            return _response(200, {"result": "ignored"})
        line_event = events[0]
        event_type = line_event.get("type")
        _log("received", rid=rid, type=event_type, batch=len(events))

        handlers = {
            "follow": _Conversation.on_follow,
            "unfollow": _Conversation.on_unfollow,
            "message": _Conversation.on_message,
        }
        on_event = handlers.get(event_type)
        if on_event is None:
            _log("ignored_event_type", rid=rid, type=event_type)
            return _response(200, {"result": "ignored"})

        # 3) Dispatch
        line = LineClient(
            settings.access_token or "",
            settings.line_api_base_url,
            timeout=settings.line_timeout_seconds,
        )
        result = on_event(_Conversation(settings, line, line_event, rid))
    except Exception as e:
        logger.exception("webhook handling failed")
        _log("failed", rid=rid, error=str(e))
        return _response(200, {"result": "error"})

    _log("ok", rid=rid, result=result, ms_total=int((time.time() - start_ts) * 1000))
    return _response(200, {"result": result})
