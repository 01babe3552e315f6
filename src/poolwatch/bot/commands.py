# src/poolwatch/bot/commands.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import structlog

from poolwatch.alerts.state import Zone
from poolwatch.errors import PoolNotFound, UnknownFeature, ValidationError
from poolwatch.pricing.codec import format_price
from poolwatch.scheduler.service import MonitorService
from poolwatch.utils.time import humanize_ms
from poolwatch.utils.validation import parse_bound, parse_pool_fields, validate_bounds

log = structlog.get_logger("bot")

HELP_TEXT = """🤖 *Pool Price Alert Bot*

📋 *Commands:*
/list - pools being monitored
/status - live prices
/add - add a pool
/edit - change min/max of a pool
/remove - remove a pool
/settings - alert switches
/toggle <n|name> - flip an alert switch
/cancel - abort the current step
/help - this guide

📝 *Adding a pool:* send /add, then one field per line:
```
PoolID
PoolName
Min
Max
Invert (true/false, optional)
```
*Example:*
```
0xabc123...
USDT/USDC
0.998
1.002
```"""

ADD_PROMPT = """📝 *Add a pool*

Send one field per line:
```
PoolID
PoolName
Min
Max
Invert (true/false, optional)
```
Send /cancel to abort."""

EDIT_VALUES_PROMPT = "✏️ Editing *{name}*\n\nSend the new Min and Max (2 lines):\n```\n0.997\n1.003\n```"


@dataclass(slots=True)
class Pending:
    mode: str                      # "add" | "edit" | "edit-values" | "remove"
    index: Optional[int] = None    # 0-based, set for "edit-values"
    pool_id: Optional[str] = None  # pool picked at that index


class CommandHandler:
    """
    Chat front-end over MonitorService. handle() takes one inbound text and
    returns the reply (None when the message is not for us). Multi-step
    commands (/add, /edit, /remove) keep per-chat pending state until they
    succeed or /cancel.
    """
    def __init__(self, service: MonitorService):
        self.service = service
        self._pending: dict[str, Pending] = {}

    def pending(self, chat_id) -> Optional[Pending]:
        return self._pending.get(str(chat_id))

    async def handle(self, chat_id, text: str) -> Optional[str]:
        text = (text or "").strip()
        if not text:
            return None
        key = str(chat_id)
        if text.startswith("/"):
            head, _, arg = text.partition(" ")
            command = head[1:].split("@", 1)[0].lower()
            return await self._command(key, command, arg.strip())
        step = self._pending.get(key)
        if step is None:
            return None
        return await self._continue(key, step, text)

    # --- commands ---

    async def _command(self, key: str, command: str, arg: str) -> str:
        if command in ("start", "help"):
            return HELP_TEXT
        if command == "list":
            return self.render_list()
        if command == "status":
            return await self.render_status()
        if command == "settings":
            return self.render_settings()
        if command == "toggle":
            return await self._toggle(arg)
        if command == "cancel":
            self._pending.pop(key, None)
            return "❌ Cancelled."
        if command == "add":
            self._pending[key] = Pending("add")
            return ADD_PROMPT
        if command in ("edit", "remove"):
            pools = self.service.list_pools()
            if not pools:
                return f"📭 No pools to {command}."
            title = "✏️ *Pick a pool to edit:*" if command == "edit" else "🗑️ *Pick a pool to remove:*"
            lines = [title, ""]
            for i, p in enumerate(pools, start=1):
                lines.append(f"{i}. {p.name}" + (f" (Range: {p.min} - {p.max})" if command == "edit" else ""))
            lines.append("")
            lines.append("Send the pool number (e.g. 1)")
            self._pending[key] = Pending(command)
            return "\n".join(lines)
        return "Unknown command. Send /help."

    async def _toggle(self, arg: str) -> str:
        if not arg:
            return self.render_settings() + "\n\nUsage: /toggle <number|name>"
        try:
            enabled = await self.service.toggle_feature(arg)
        except UnknownFeature:
            return f"❌ Unknown setting: {arg}"
        name = self.service.engine.toggles.resolve(arg)
        return f"⚙️ {name}: {'ON' if enabled else 'OFF'}"

    # --- conversation steps ---

    async def _continue(self, key: str, step: Pending, text: str) -> str:
        if step.mode in ("edit", "remove"):
            index = self._parse_index(text)
            if index is None:
                return "❌ Invalid number. Try again."
            if step.mode == "edit":
                pool = self.service.list_pools()[index]
                self._pending[key] = Pending("edit-values", index=index, pool_id=pool.id)
                return EDIT_VALUES_PROMPT.format(name=pool.name)
            try:
                removed = await self.service.remove_pool(index)
            except IndexError:
                return "❌ Invalid number. Try again."
            self._pending.pop(key, None)
            log.info("bot_pool_removed", chat_id=key, pool_id=removed.id)
            return f"✅ Removed pool: *{removed.name}*"

        if step.mode == "edit-values":
            lines = text.splitlines()
            if len(lines) != 2:
                return "❌ Need exactly 2 lines (Min and Max). Try again or /cancel."
            try:
                lo = parse_bound(lines[0], "min")
                hi = parse_bound(lines[1], "max")
                validate_bounds(lo, hi)
                pool = await self.service.edit_pool(step.index, lo, hi, expected_id=step.pool_id)
            except ValidationError as e:
                return f"❌ Invalid input: {e}"
            except (IndexError, PoolNotFound):
                self._pending.pop(key, None)
                return "❌ That pool no longer exists."
            self._pending.pop(key, None)
            return f"✅ *Updated {pool.name}*\n\nNew range: {lo} - {hi}\n\n_Alert state has been reset_"

        # add
        try:
            pool = await self.service.add_pool(parse_pool_fields(text.splitlines()))
        except ValidationError as e:
            return f"❌ Invalid input: {e}\nTry again or /cancel."
        self._pending.pop(key, None)
        log.info("bot_pool_added", chat_id=key, pool_id=pool.id, name=pool.name)
        return (f"✅ *Pool added:*\n\n*{pool.name}*\nRange: {pool.min} - {pool.max}\n"
                f"Invert: {str(pool.invert).lower()}\n\n_Decimals default: {pool.decimals0}/{pool.decimals1}_")

    def _parse_index(self, text: str) -> Optional[int]:
        try:
            index = int(text.strip()) - 1
        except ValueError:
            return None
        if not 0 <= index < self.service.pool_count():
            return None
        return index

    # --- rendering ---

    def render_list(self) -> str:
        views = self.service.describe_pools()
        if not views:
            return "📭 No pools are being monitored."
        lines = ["📊 *Monitored pools:*", ""]
        for i, v in enumerate(views, start=1):
            p = v.config
            emoji = "✅" if v.zone is Zone.INSIDE else "⚠️"
            lines.append(f"{emoji} *{i}. {p.name}*")
            lines.append(f"   ID: `{p.id[:20]}...`")
            lines.append(f"   Range: {p.min} - {p.max}")
            lines.append(f"   Invert: {str(p.invert).lower()}")
            if v.last_price is not None:
                lines.append(f"   Last price: {format_price(v.last_price)}")
            lines.append(f"   In range: {humanize_ms(v.in_range_ms)}")
            lines.append("")
        return "\n".join(lines).rstrip()

    async def render_status(self) -> str:
        if not self.service.pool_count():
            return "📭 No pools are being monitored."
        lines = ["📈 *Current prices:*", ""]
        for st in await self.service.status():
            p = st.config
            if st.price is None:
                lines.append(f"❌ *{p.name}*: price unavailable")
                lines.append("")
                continue
            emoji, label = ("⚠️", "OUT OF RANGE") if st.outside else ("✅", "Normal")
            lines.append(f"{emoji} *{p.name}*")
            lines.append(f"   Price: `{format_price(st.price)}` ({label})")
            lines.append(f"   Range: {p.min} - {p.max}")
            lines.append("")
        return "\n".join(lines).rstrip()

    def render_settings(self) -> str:
        lines = ["⚙️ *Alert settings:*", ""]
        for i, (name, on) in enumerate(self.service.toggles().items(), start=1):
            lines.append(f"{i}. {name}: {'ON' if on else 'OFF'}")
        return "\n".join(lines)
