"""locatr - Live location telemetry: periodic device sampling, live fan-out and trail maps."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("locatr")
except PackageNotFoundError:
    __version__ = "0+local"
from locatr.capabilities import CapabilityProvider, PermissionState
from locatr.config import LocatrConfig, MapDefaults
from locatr.exceptions import (
    CapabilityError,
    FixTimeoutError,
    InvalidInputError,
    LoadError,
    LocatrConfigError,
    LocatrError,
    NotFoundError,
    PermissionDeniedError,
    ResolutionError,
    StoreError,
    StoreReadError,
    StoreWriteError,
    describe_error,
)
from locatr.feed import LiveFeed
from locatr.models import (
    Device,
    DeviceDescriptor,
    InsertEvent,
    LocationSample,
    PositionFix,
    generate_device_code,
    normalize_device_code,
)
from locatr.render import MapSurface, TrailRenderer
from locatr.resolver import Resolution, load_history, resolve, resolve_device
from locatr.sampler import SamplerState, SamplingLoop
from locatr.session import TrackingSession
from locatr.store import MemorySampleStore, MqttInsertFeed, RestSampleStore, SampleStore
from locatr.viewer import TrailViewer, ViewState, ViewSummary

__all__ = [
    "__version__",
    "CapabilityError",
    "CapabilityProvider",
    "Device",
    "DeviceDescriptor",
    "FixTimeoutError",
    "InsertEvent",
    "InvalidInputError",
    "LiveFeed",
    "LoadError",
    "LocationSample",
    "LocatrConfig",
    "LocatrConfigError",
    "LocatrError",
    "MapDefaults",
    "MapSurface",
    "MemorySampleStore",
    "MqttInsertFeed",
    "NotFoundError",
    "PermissionDeniedError",
    "PermissionState",
    "PositionFix",
    "Resolution",
    "ResolutionError",
    "RestSampleStore",
    "SampleStore",
    "SamplerState",
    "SamplingLoop",
    "StoreError",
    "StoreReadError",
    "StoreWriteError",
    "TrackingSession",
    "TrailRenderer",
    "TrailViewer",
    "ViewState",
    "ViewSummary",
    "describe_error",
    "generate_device_code",
    "load_history",
    "normalize_device_code",
    "resolve",
    "resolve_device",
]
