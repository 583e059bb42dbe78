"""Viewer: resolves a code, bootstraps the trail and follows the live feed."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from locatr._constants import LOW_BATTERY_THRESHOLD
from locatr.config import LocatrConfig
from locatr.exceptions import LoadError, LocatrError
from locatr.feed import LiveFeed
from locatr.models.device import Device
from locatr.models.sample import LocationSample
from locatr.render.trail import TrailRenderer
from locatr.resolver import load_history, resolve_device
from locatr.store.base import SampleStore

_logger = logging.getLogger(__name__)


class ViewSummary(BaseModel):
    """Summary fields derived from the trail."""

    model_config = ConfigDict(frozen=True)

    sample_count: int = 0
    latest_battery: int | None = None
    last_update: datetime | None = None

    @property
    def low_battery(self) -> bool:
        return self.latest_battery is not None and self.latest_battery <= LOW_BATTERY_THRESHOLD


class ViewState(BaseModel):
    """Client-local view of one resolved device.

    Every sample in ``samples`` belongs to ``device``.
    """

    model_config = ConfigDict(extra="forbid")

    device: Device | None = None
    samples: list[LocationSample] = Field(default_factory=list)
    loading: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.samples

    def summary(self) -> ViewSummary:
        if not self.samples:
            return ViewSummary()
        latest = self.samples[-1]
        return ViewSummary(
            sample_count=len(self.samples),
            latest_battery=latest.battery_level,
            last_update=latest.captured_at,
        )


class TrailViewer:
    """Live trail of one device at a time.

    Usage::

        async with TrailViewer(store, on_change=redraw) as viewer:
            view = await viewer.open("ABC123")
    """

    def __init__(
        self,
        store: SampleStore,
        *,
        config: LocatrConfig | None = None,
        renderer: TrailRenderer | None = None,
        on_change: Callable[[ViewState], None] | None = None,
        on_error: Callable[[LocatrError], None] | None = None,
    ) -> None:
        self._store = store
        self._config = (config or LocatrConfig()).validate()
        self.renderer = renderer or TrailRenderer(self._config.map)
        self._on_change = on_change
        self._on_error = on_error
        self._feed = LiveFeed(store, self._on_live_sample, table=self._config.samples_table)
        self.view = ViewState()
        self._generation = 0
        # Generation of the open() call whose device the view currently holds.
        self._view_generation = 0
        # Live samples received while the bootstrap load is in flight.
        self._pending: list[LocationSample] | None = None

    async def __aenter__(self) -> TrailViewer:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def feed(self) -> LiveFeed:
        return self._feed

    async def open(self, code: str) -> ViewState:
        """Resolve *code* and show its trail.

        Raises
        ------
        InvalidInputError, NotFoundError, LoadError
            Device lookup failed; the previous view is left untouched.
        LoadError
            The device resolved but its history did not load; the view
            holds the device with an empty trail and keeps following the
            live feed.
        """
        self._generation += 1
        generation = self._generation

        try:
            device = await resolve_device(self._store, code)
        except LocatrError as exc:
            self._report(exc)
            raise
        if self._view_generation > generation:
            _logger.debug("Resolution of %s superseded", device.device_code)
            return self.view

        self._feed.detach()
        self.view = ViewState(device=device, loading=True)
        self._view_generation = generation
        self._pending = []
        self._feed.attach(device)

        load_error: LoadError | None = None
        try:
            history = await load_history(self._store, device, limit=self._config.history_limit)
        except LoadError as exc:
            history = []
            load_error = exc
        if self._view_generation != generation:
            _logger.debug("History of %s superseded", device.device_code)
            return self.view

        self._commit_history(history)
        self.view.loading = False
        self._changed()
        _logger.debug("Found device: %s samples=%d", device.display_name, len(self.view.samples))

        if load_error is not None:
            self._report(load_error)
            raise load_error
        return self.view

    async def close(self) -> None:
        """Release the live feed and the map, and clear the view."""
        self._generation += 1
        self._view_generation = self._generation
        self._feed.detach()
        self._pending = None
        self.view = ViewState()
        self.renderer.release()

    def _commit_history(self, history: Sequence[LocationSample]) -> None:
        pending = self._pending or []
        self._pending = None
        known_ids = {sample.id for sample in history if sample.id is not None}
        # Only the bootstrap window can overlap with the live feed.
        late = [sample for sample in pending if sample.id is None or sample.id not in known_ids]
        self.view.samples = [*history, *late]
        self._trim()

    def _on_live_sample(self, sample: LocationSample) -> None:
        device = self.view.device
        if device is None or sample.device_id != device.id:
            return
        if self._pending is not None:
            self._pending.append(sample)
            return
        self.view.samples.append(sample)
        self._trim()
        self._changed()

    def _trim(self) -> None:
        overflow = len(self.view.samples) - self._config.trail_limit
        if overflow > 0:
            del self.view.samples[:overflow]

    def _changed(self) -> None:
        device = self.view.device
        if device is not None:
            self.renderer.initialize()
            self.renderer.update(device.device_code, self.view.samples)
        if self._on_change is not None:
            try:
                self._on_change(self.view)
            except Exception:
                _logger.debug("on_change callback failed", exc_info=True)

    def _report(self, error: LocatrError) -> None:
        _logger.warning("Viewer error: %s", error)
        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception:
                _logger.debug("on_error callback failed", exc_info=True)
