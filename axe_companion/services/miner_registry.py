from __future__ import annotations

import logging
from threading import Lock
from typing import Callable, List

from axe_companion.config import SavedMiner

logger = logging.getLogger("axe_companion.miner_registry")


class MinerRegistry:
    """Named miner addresses the user has saved.

    Only bookkeeping: nothing here talks to a miner. ``persist`` receives the
    full list after every change.
    """

    def __init__(
        self,
        miners: List[SavedMiner] | None = None,
        persist: Callable[[List[SavedMiner]], None] | None = None,
    ) -> None:
        self._lock = Lock()
        self._miners: List[SavedMiner] = list(miners or [])
        self._persist = persist

    def miners(self) -> List[SavedMiner]:
        with self._lock:
            return [miner.model_copy() for miner in self._miners]

    def add(self, address: str, name: str | None = None) -> SavedMiner:
        address = address.strip()
        if not address:
            raise ValueError("Miner address must not be empty.")
        with self._lock:
            if any(miner.address == address for miner in self._miners):
                raise ValueError(f"Miner {address} is already saved.")
            miner = SavedMiner(address=address, name=name)
            self._miners.append(miner)
            self._save()
        logger.info("Saved miner %s", address)
        return miner.model_copy()

    def rename(self, address: str, name: str) -> SavedMiner:
        with self._lock:
            for index, miner in enumerate(self._miners):
                if miner.address == address:
                    updated = miner.model_copy(update={"name": name})
                    self._miners[index] = updated
                    self._save()
                    return updated.model_copy()
        raise KeyError(address)

    def remove(self, address: str) -> None:
        with self._lock:
            remaining = [miner for miner in self._miners if miner.address != address]
            if len(remaining) == len(self._miners):
                raise KeyError(address)
            self._miners = remaining
            self._save()
        logger.info("Removed miner %s", address)

    def _save(self) -> None:
        if self._persist:
            self._persist(list(self._miners))
