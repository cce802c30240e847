"""Reconciles the local cart with the server cart after sign-in."""

import logging
from typing import Optional

from .models import Failure, MergeLine, SyncPhase, SyncReport
from .store import CartStore
from .tajashop_client import TajaShopClient

logger = logging.getLogger(__name__)


class CartSync:
    """
    Merge-then-hydrate state machine keyed by the authentication token.

    The first sync for a newly seen token pushes any local lines to the server
    (at most once per token), then replaces the local cart with the server's
    copy. Further syncs with the same token do nothing until the token changes.
    A response that arrives after the token has changed is discarded.
    """

    def __init__(self, store: CartStore, client: TajaShopClient) -> None:
        self.store = store
        self.client = client
        self._token: Optional[str] = None
        self._phase = SyncPhase.IDLE
        self._merge_pending = False
        self._synced = False
        # Bumped on every token change; responses from an older cycle are stale
        self._cycle = 0

    @property
    def phase(self) -> SyncPhase:
        return self._phase

    @property
    def active_token(self) -> Optional[str]:
        return self._token

    def reset(self) -> None:
        """Forget the active token and go idle (e.g. on logout)."""
        if self._token:
            logger.info("Cart sync reset, local cart is the only source of truth")
        self._start_cycle(None)

    def _start_cycle(self, token: Optional[str]) -> None:
        self._cycle += 1
        self._token = token
        self._phase = SyncPhase.IDLE
        self._merge_pending = bool(token)
        self._synced = False

    async def sync(self, token: Optional[str]) -> SyncReport:
        """
        Run one sync cycle for ``token``.

        Args:
            token: Current bearer token; empty or None resets to idle

        Returns:
            What the cycle did. Never raises.
        """
        if not token:
            self.reset()
            return SyncReport(skipped=True)

        if token != self._token:
            logger.info("New authentication token, starting cart sync cycle")
            self._start_cycle(token)
        elif self._synced or self._phase != SyncPhase.IDLE:
            logger.debug("Cart already synced (or syncing) for this token, skipping")
            return SyncReport(phase=self._phase, skipped=True)

        cycle = self._cycle
        report = SyncReport()
        try:
            if self._merge_pending:
                # One-shot: consumed before the request so it can't fire twice
                self._merge_pending = False
                lines = [
                    MergeLine(product=item.product_id, quantity=item.quantity)
                    for item in self.store.items
                ]
                if lines:
                    try:
                        await self._merge(token, cycle, lines, report)
                    except Exception as e:
                        # Hydration still runs after a failed merge
                        logger.error(f"Unexpected error during cart merge: {e}", exc_info=True)
                        report.errors.append(f"merge: {e}")
                    if report.stale or self._cycle != cycle:
                        report.stale = True
                        return report

            await self._hydrate(token, cycle, report)
        except Exception as e:
            logger.error(f"Unexpected error during cart sync: {e}", exc_info=True)
            report.errors.append(str(e))
        finally:
            if self._cycle == cycle:
                self._phase = SyncPhase.IDLE
                self._synced = True
        return report

    async def refresh(self) -> SyncReport:
        """Re-hydrate the local cart from the server for the active token."""
        token = self._token
        if not token:
            return SyncReport(skipped=True)
        if self._phase != SyncPhase.IDLE:
            return SyncReport(phase=self._phase, skipped=True)

        cycle = self._cycle
        report = SyncReport()
        try:
            await self._hydrate(token, cycle, report)
        except Exception as e:
            logger.error(f"Unexpected error during cart refresh: {e}", exc_info=True)
            report.errors.append(str(e))
        finally:
            if self._cycle == cycle:
                self._phase = SyncPhase.IDLE
        return report

    async def _merge(self, token: str, cycle: int, lines: list[MergeLine], report: SyncReport) -> None:
        self._phase = SyncPhase.MERGING
        report.phase = SyncPhase.MERGING
        result = await self.client.merge_cart(lines, token=token)

        if self._cycle != cycle:
            logger.info("Token changed during merge, discarding result")
            report.stale = True
            return

        if isinstance(result, Failure):
            # A failed merge must not block hydration
            logger.warning(f"Cart merge failed: {result.error}")
            report.errors.append(f"merge: {result.error}")
        else:
            report.merged = True
            logger.info(f"Merged {len(lines)} local line(s) into server cart")

    async def _hydrate(self, token: str, cycle: int, report: SyncReport) -> None:
        self._phase = SyncPhase.HYDRATING
        report.phase = SyncPhase.HYDRATING
        result = await self.client.get_cart(token=token)

        if self._cycle != cycle:
            logger.info("Token changed during hydration, discarding server cart")
            report.stale = True
            return

        if isinstance(result, Failure) or result.cart is None:
            error = result.error if isinstance(result, Failure) else "no cart in response"
            logger.warning(f"Could not fetch server cart, keeping local cart: {error}")
            report.errors.append(f"hydrate: {error}")
            return

        self.store.replace_items(item.to_cart_item() for item in result.cart.items)
        report.hydrated = True
        logger.info(f"Hydrated local cart with {len(result.cart.items)} server line(s)")
