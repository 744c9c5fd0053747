"""USB bulk connection to a device in bootloader mode.

Uses ``pyusb`` (libusb). Without an explicit vendor/product id the first
device exposing a fastboot interface (class 0xFF, subclass 0x42,
protocol 0x03) is used. The bulk IN and OUT endpoints are discovered by
scanning the claimed interface's endpoint list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import usb.core
import usb.util

from ..errors import DeviceNotFound, TransportFailure

logger = logging.getLogger(__name__)

FASTBOOT_CLASS = 0xFF
FASTBOOT_SUBCLASS = 0x42
FASTBOOT_PROTOCOL = 0x03
DEFAULT_TIMEOUT_MS = 0  # 0 waits forever


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = 0
    product_id: int = 0
    manufacturer: str = ""
    product: str = ""
    serial_number: str = ""

    def to_dict(self) -> dict:
        return {
            "vendor_id": f"0x{self.vendor_id:04X}",
            "product_id": f"0x{self.product_id:04X}",
            "manufacturer": self.manufacturer,
            "product": self.product,
            "serial_number": self.serial_number,
        }


def _find_fastboot_interface(config):
    return usb.util.find_descriptor(
        config,
        bInterfaceClass=FASTBOOT_CLASS,
        bInterfaceSubClass=FASTBOOT_SUBCLASS,
        bInterfaceProtocol=FASTBOOT_PROTOCOL,
    )


def _is_fastboot_device(dev) -> bool:
    return any(_find_fastboot_interface(config) is not None for config in dev)


def _read_string(dev, index: int) -> str:
    if not index:
        return ""
    try:
        return usb.util.get_string(dev, index) or ""
    except (usb.core.USBError, ValueError) as e:
        logger.debug("Could not read string descriptor %d: %s", index, e)
        return ""


class USBConnection:
    """Bulk-transfer channel to one bootloader.

    Usage::

        conn = USBConnection()
        conn.open()
        conn.write(frame_bytes)
        response = conn.read(256)
        conn.close()
    """

    def __init__(
        self,
        vendor_id: int | None = None,
        product_id: int | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._timeout_ms = timeout_ms
        self._device = None
        self._interface_number: int | None = None
        self._ep_in: int | None = None
        self._ep_out: int | None = None
        self._connected = False
        self._device_info = DeviceInfo()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    @property
    def endpoints(self) -> tuple[int | None, int | None]:
        """(input, output) endpoint addresses."""
        return self._ep_in, self._ep_out

    def _find_device(self):
        criteria = {}
        if self._vendor_id is not None:
            criteria["idVendor"] = self._vendor_id
        if self._product_id is not None:
            criteria["idProduct"] = self._product_id
        if not criteria:
            criteria["custom_match"] = _is_fastboot_device
        try:
            return usb.core.find(**criteria)
        except usb.core.NoBackendError as e:
            raise DeviceNotFound(f"No libusb backend available: {e}") from e

    def open(self) -> DeviceInfo:
        """Open the device, claim its interface and resolve both endpoints.

        Returns:
            DeviceInfo with USB descriptor information.

        Raises:
            DeviceNotFound: If no device matches or endpoints are missing.
            TransportFailure: If the device cannot be configured.
        """
        dev = self._find_device()
        if dev is None:
            raise DeviceNotFound(
                "No bootloader device found. Ensure the device is in "
                "fastboot mode and you have permissions."
            )

        try:
            try:
                config = dev.get_active_configuration()
            except usb.core.USBError:
                dev.set_configuration()
                config = dev.get_active_configuration()

            intf = _find_fastboot_interface(config)
            if intf is None:
                intf = config[(0, 0)]
            number = intf.bInterfaceNumber
            alternate = intf.bAlternateSetting

            if dev.is_kernel_driver_active(number):
                dev.detach_kernel_driver(number)

            logger.debug("Claiming interface %d", number)
            usb.util.claim_interface(dev, number)
            logger.debug("Selecting alternate setting %d", alternate)
            dev.set_interface_altsetting(
                interface=number, alternate_setting=alternate
            )
        except usb.core.USBError as e:
            raise TransportFailure(f"Could not configure device: {e}") from e

        ep_in = usb.util.find_descriptor(
            intf,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress)
            == usb.util.ENDPOINT_IN,
        )
        ep_out = usb.util.find_descriptor(
            intf,
            custom_match=lambda e: usb.util.endpoint_direction(e.bEndpointAddress)
            == usb.util.ENDPOINT_OUT,
        )
        if ep_in is None or ep_out is None:
            usb.util.release_interface(dev, number)
            raise DeviceNotFound("Could not find bulk IN/OUT endpoints")

        self._device = dev
        self._interface_number = number
        self._ep_in = ep_in.bEndpointAddress
        self._ep_out = ep_out.bEndpointAddress
        self._connected = True
        logger.info(
            "Endpoints: IN=0x%02x OUT=0x%02x", self._ep_in, self._ep_out
        )

        self._device_info = DeviceInfo(
            vendor_id=dev.idVendor,
            product_id=dev.idProduct,
            manufacturer=_read_string(dev, dev.iManufacturer),
            product=_read_string(dev, dev.iProduct),
            serial_number=_read_string(dev, dev.iSerialNumber),
        )
        logger.info(
            "Connected: %s %s (%s)",
            self._device_info.manufacturer,
            self._device_info.product,
            self._device_info.serial_number,
        )
        return self._device_info

    def close(self) -> None:
        """Release the interface and free libusb resources."""
        if not self._connected:
            return

        try:
            usb.util.release_interface(self._device, self._interface_number)
            usb.util.dispose_resources(self._device)
        except usb.core.USBError as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            logger.info("Disconnected")

    def write(self, data: bytes) -> int:
        """Write one frame to the OUT endpoint.

        Raises:
            TransportFailure: If not connected or the transfer fails.
        """
        if not self._connected:
            raise TransportFailure("Not connected to device")

        logger.debug("-> %d bytes", len(data))
        try:
            return self._device.write(self._ep_out, data, timeout=self._timeout_ms)
        except usb.core.USBError as e:
            raise TransportFailure(f"Write failed: {e}") from e

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes from the IN endpoint.

        Blocks until the device answers unless a timeout was configured.

        Raises:
            TransportFailure: If not connected, the transfer fails or times out.
        """
        if not self._connected:
            raise TransportFailure("Not connected to device")

        try:
            data = self._device.read(self._ep_in, size, timeout=self._timeout_ms)
        except usb.core.USBError as e:
            raise TransportFailure(f"Read failed: {e}") from e
        return bytes(data)
