import base64
import logging
from dataclasses import dataclass
from typing import Any

import requests

from tradebot.errors import ActionError

logger = logging.getLogger(__name__)

DEFAULT_NETWORK_ID = "base-sepolia"
REDACTED = "***"


@dataclass(frozen=True)
class AgentConfig:
    base_url: str
    network_id: str
    api_key_name: str
    api_key_private_key: str
    request_timeout_seconds: float
    user_agent: str


def load_agent_config(config: dict, env: dict[str, str]) -> AgentConfig:
    a = (config.get("agent") or {}) if isinstance(config, dict) else {}
    n = (config.get("network") or {}) if isinstance(config, dict) else {}
    return AgentConfig(
        base_url=str(a.get("base_url", "http://127.0.0.1:8787")).rstrip("/"),
        network_id=str(n.get("id") or DEFAULT_NETWORK_ID),
        api_key_name=str(env.get("CDP_API_KEY_NAME") or ""),
        # Keys pasted into .env files usually carry literal "\n" sequences.
        api_key_private_key=str(env.get("CDP_API_KEY_PRIVATE_KEY") or "").replace("\\n", "\n"),
        request_timeout_seconds=float(a.get("request_timeout_seconds", 30)),
        user_agent=str(a.get("user_agent", "tradebot/0.1")),
    )


def encode_header_secret(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("ascii") if value else ""


class ActionClient:
    """
    Thin HTTP client for the wallet/agent action service.

    The service owns keys, signing and broadcasting. We only list its actions and
    invoke them by name:

    - `GET  {base_url}/actions`        -> `[{"name": ...}, ...]`
    - `POST {base_url}/actions/{name}` with `{"args": {...}}` -> `{"result": ...}`

    Credentials travel as headers. The private key is a multi-line PEM block, which is
    not a legal header value, so it is sent base64-encoded.
    """

    def __init__(self, cfg: AgentConfig, session: requests.Session | None = None):
        self.cfg = cfg
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "User-Agent": cfg.user_agent,
                "X-Network-Id": cfg.network_id,
                "X-Cdp-Api-Key-Name": cfg.api_key_name.strip(),
                "X-Cdp-Api-Key-Private-Key-B64": encode_header_secret(cfg.api_key_private_key),
            }
        )
        key = cfg.api_key_private_key
        # Exception texts may carry the key as-is or in its repr form.
        self._secrets = [s for s in (key, key.replace("\n", "\\n"), encode_header_secret(key)) if s]
        self._actions: list[str] | None = None

    def _redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def _url(self, path: str) -> str:
        return f"{self.cfg.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = self.session.request(method, self._url(path), timeout=self.cfg.request_timeout_seconds, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except requests.HTTPError as e:
            status = getattr(e.response, "status_code", None)
            body = (getattr(e.response, "text", "") or "")[:200]
            raise ActionError(self._redact(f"{method} {path} failed with HTTP {status}: {body}")) from e
        except requests.RequestException as e:
            raise ActionError(self._redact(f"{method} {path} failed: {type(e).__name__}: {e}")) from e
        except ValueError as e:
            raise ActionError(f"{method} {path} returned invalid JSON") from e

    def list_actions(self, *, refresh: bool = False) -> list[str]:
        if self._actions is None or refresh:
            data = self._request("GET", "/actions")
            if not isinstance(data, list):
                raise ActionError("Action listing must be a JSON array")
            names = []
            for item in data:
                name = item.get("name") if isinstance(item, dict) else item
                if name:
                    names.append(str(name))
            self._actions = names
            logger.info(f"Action service exposes {len(names)} actions ({self.cfg.network_id})")
        return list(self._actions)

    def require(self, *names: str) -> None:
        """Fail fast when the service does not expose an action we depend on."""
        available = set(self.list_actions())
        missing = [n for n in names if n not in available]
        if missing:
            raise ActionError(f"Required actions not available: {', '.join(missing)}")

    def invoke(self, name: str, args: dict[str, Any] | None = None) -> Any:
        logger.debug(f"Invoking {name} with {args or {}}")
        data = self._request("POST", f"/actions/{name}", json={"args": args or {}})
        if isinstance(data, dict):
            if data.get("error"):
                raise ActionError(f"{name} rejected: {data['error']}")
            if "result" in data:
                return data["result"]
        raise ActionError(f"{name} returned an unexpected payload")
