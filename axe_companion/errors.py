from __future__ import annotations


class MinerError(Exception):
    """Base class for failures talking to a miner.

    ``str(exc)`` is always a message that can be shown to the user as-is.
    """


class MinerUnreachable(MinerError):
    def __init__(self, address: str, reason: str | None = None) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"Failed to connect to miner at {address}")


class MalformedResponse(MinerError):
    def __init__(self, url: str, detail: str) -> None:
        self.url = url
        self.detail = detail
        super().__init__(f"Failed to parse JSON from {url}: {detail}")


class SettingsRejected(MinerError):
    """The firmware answered the settings PATCH with a non-success status.

    ``body`` is the raw response text; firmware puts its validation message
    there and callers surface it unmodified.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Failed with status {status_code}: {body}")
