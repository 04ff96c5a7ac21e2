import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Optional

import httpx

from .exceptions import SubscriptionError

logger = logging.getLogger(__name__)

SnapshotCallback = Callable[[Any], None]


def log_task_failure(task: "asyncio.Task") -> None:
    """Done-callback for background tasks, so a crash is logged and not lost."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("[Task] %s died", task.get_name(), exc_info=exc)


class Subscription:
    """Handle returned by ``subscribe``; ``cancel`` is safe to call twice."""

    def __init__(self, publisher: "SnapshotPublisher", callback: SnapshotCallback):
        self._publisher = publisher
        self.callback = callback
        self.active = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._publisher._unsubscribe(self)


class SnapshotPublisher:
    """Fans out full snapshots ({id: record} or None) to subscribers, in order."""

    kind = "base"

    def __init__(self):
        self._subs: List[Subscription] = []
        self._snapshot: Any = None
        self._has_snapshot = False
        self.closed = False

    @property
    def current(self) -> Any:
        return self._snapshot

    @property
    def subscriber_count(self) -> int:
        return len(self._subs)

    def subscribe(self, callback: SnapshotCallback) -> Subscription:
        if self.closed:
            raise SubscriptionError(f"{self.kind} publisher is closed")
        sub = Subscription(self, callback)
        self._subs.append(sub)
        if self._has_snapshot:
            self._deliver(sub, self._snapshot)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        if sub in self._subs:
            self._subs.remove(sub)

    def _publish(self, snapshot: Any) -> None:
        self._snapshot = snapshot
        self._has_snapshot = True
        for sub in list(self._subs):
            self._deliver(sub, snapshot)

    def _deliver(self, sub: Subscription, snapshot: Any) -> None:
        if not sub.active:
            return
        try:
            sub.callback(snapshot)
        except Exception:
            # one broken view must not starve the others
            logger.exception("[Feed] subscriber failed; continuing")

    async def start(self) -> None:
        pass

    async def aclose(self) -> None:
        self.closed = True
        for sub in list(self._subs):
            sub.cancel()


class InMemoryPublisher(SnapshotPublisher):
    kind = "memory"

    def publish(self, snapshot: Any) -> None:
        self._publish(snapshot)


# ---- Firebase Realtime Database (REST streaming) ----

def _as_dict(node: Any) -> Dict[str, Any]:
    if isinstance(node, dict):
        return dict(node)
    if isinstance(node, list):
        return {str(i): v for i, v in enumerate(node) if v is not None}
    return {}


def _merge(node: Any, patch: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    out = _as_dict(node)
    for k, v in patch.items():
        if v is None:
            out.pop(k, None)
        else:
            out[k] = v
    return out or None


def apply_event(tree: Any, path: str, data: Any, merge: bool = False) -> Any:
    """
    Apply one ``put``/``patch`` event to a copy of ``tree``.

    Nodes along ``path`` are copied so snapshots already handed out are never
    mutated. ``put`` with null deletes, ``patch`` merges child keys.
    """
    parts = [p for p in path.split("/") if p]
    if not parts:
        if merge:
            return _merge(tree, data or {})
        return data

    root = _as_dict(tree)
    node = root
    for p in parts[:-1]:
        child = _as_dict(node.get(p))
        node[p] = child
        node = child

    last = parts[-1]
    if merge:
        merged = _merge(node.get(last), data or {})
        if merged is None:
            node.pop(last, None)
        else:
            node[last] = merged
    elif data is None:
        node.pop(last, None)
    else:
        node[last] = data
    return root or None


class FirebaseStreamPublisher(SnapshotPublisher):
    """
    Follows ``{database_url}/{path}.json`` as a server-sent event stream and
    republishes the whole subtree after every ``put``/``patch``.

    A ``cancel`` event (rules denied the read) publishes None and stops;
    ``auth_revoked``, dropped connections and HTTP errors reconnect after
    ``reconnect_secs``.
    """

    kind = "firebase"

    def __init__(self, database_url: str, path: str = "incidents", auth: Optional[str] = None,
                 reconnect_secs: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__()
        self.url = f"{database_url.rstrip('/')}/{path.strip('/')}.json"
        self.auth = auth
        self.reconnect_secs = reconnect_secs
        self._transport = transport
        self._tree: Any = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self.run(), name="firebase-stream")
            self._task.add_done_callback(log_task_failure)

    async def aclose(self) -> None:
        await super().aclose()
        if self._task is not None:
            self._task.cancel()
            # a crash was already logged by the done-callback
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None

    async def run(self) -> None:
        params = {"auth": self.auth} if self.auth else {}
        headers = {"Accept": "text/event-stream"}
        timeout = httpx.Timeout(10.0, read=None)  # keep-alives arrive every ~30s
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True, transport=self._transport) as client:
            while not self.closed:
                try:
                    async with client.stream("GET", self.url, params=params, headers=headers) as r:
                        if r.status_code in (401, 403):
                            logger.warning("[Feed] firebase denied %s (HTTP %s); no data", self.url, r.status_code)
                            self._publish(None)
                            return
                        if r.status_code != 200:
                            logger.warning("[Feed] firebase HTTP %s for %s", r.status_code, self.url)
                        elif await self._consume(r):
                            return
                except (httpx.HTTPError, ValueError) as e:
                    logger.warning("[Feed] firebase stream error: %s", e)
                if self.closed:
                    return
                await asyncio.sleep(self.reconnect_secs)

    async def _consume(self, response: httpx.Response) -> bool:
        """Read one stream. True means stop for good, False means reconnect."""
        event, data_lines = None, []
        async for line in response.aiter_lines():
            if line.startswith("event:"):
                event = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:"):].strip())
            elif line == "":
                if event is not None:
                    stop = self._handle(event, "\n".join(data_lines))
                    if stop is not None:
                        return stop
                event, data_lines = None, []
        return False

    def _handle(self, event: str, raw: str) -> Optional[bool]:
        if event in ("put", "patch"):
            msg = json.loads(raw)
            if not isinstance(msg, dict) or not isinstance(msg.get("path", "/"), str):
                logger.warning("[Feed] ignoring %s without a path/data body: %.80s", event, raw)
                return None
            self._tree = apply_event(self._tree, msg.get("path", "/"), msg.get("data"), merge=(event == "patch"))
            self._publish(self._tree)
            return None
        if event == "keep-alive":
            return None
        if event == "cancel":
            logger.warning("[Feed] firebase cancelled the stream: %s", raw)
            self._publish(None)
            return True
        if event == "auth_revoked":
            logger.warning("[Feed] firebase auth revoked; reconnecting")
            return False
        logger.debug("[Feed] ignoring event %s", event)
        return None
