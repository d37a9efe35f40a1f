"""
Ecowitt Firmware Updater - firmware upload utility for Ecowitt weather-station gateways

Reads gateway identity over the binary control protocol and serves new
firmware images to the gateway over its callback connection.
"""

__version__ = "0.1.0"

from ecowitt_firmware_updater.config import UpdaterConfig
from ecowitt_firmware_updater.protocol import ControlSession, FirmwareTransferListener

__all__ = [
    "UpdaterConfig",
    "ControlSession",
    "FirmwareTransferListener",
    "__version__",
]
