"""Tests for the pyusb connection, with libusb mocked out."""

from __future__ import annotations

from array import array
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import usb.core

from fastboot_mcp.errors import DeviceNotFound, TransportFailure
from fastboot_mcp.transport.usb_connection import (
    FASTBOOT_CLASS,
    FASTBOOT_PROTOCOL,
    FASTBOOT_SUBCLASS,
    USBConnection,
    _is_fastboot_device,
)


class FakeInterface(list):
    """Interface descriptor: iterable over its endpoints."""

    def __init__(self, endpoints, number=0, alternate=0, cls=0xFF, subclass=0x42, protocol=0x03):
        super().__init__(endpoints)
        self.bInterfaceNumber = number
        self.bAlternateSetting = alternate
        self.bInterfaceClass = cls
        self.bInterfaceSubClass = subclass
        self.bInterfaceProtocol = protocol


class FakeConfig(list):
    """Configuration descriptor: iterable over interfaces, indexable by (number, alt)."""

    def __getitem__(self, key):
        if isinstance(key, tuple):
            for intf in self:
                if (intf.bInterfaceNumber, intf.bAlternateSetting) == key:
                    return intf
            raise KeyError(key)
        return super().__getitem__(key)


def _endpoint(address: int) -> SimpleNamespace:
    return SimpleNamespace(bEndpointAddress=address)


def _make_device(interfaces=None) -> MagicMock:
    if interfaces is None:
        interfaces = [FakeInterface([_endpoint(0x81), _endpoint(0x01)])]
    dev = MagicMock()
    dev.idVendor = 0x18D1
    dev.idProduct = 0x4EE0
    dev.iManufacturer = 1
    dev.iProduct = 2
    dev.iSerialNumber = 3
    dev.get_active_configuration.return_value = FakeConfig(interfaces)
    dev.is_kernel_driver_active.return_value = False
    return dev


STRINGS = {1: "Google", 2: "Pixel", 3: "ABC123"}


@pytest.fixture
def usb_util():
    """Patch the libusb-backed helpers; descriptor matching stays real."""
    with patch("usb.util.claim_interface") as claim, patch(
        "usb.util.release_interface"
    ) as release, patch("usb.util.dispose_resources") as dispose, patch(
        "usb.util.get_string", side_effect=lambda dev, index: STRINGS[index]
    ):
        yield SimpleNamespace(claim=claim, release=release, dispose=dispose)


def _open(dev, **kwargs) -> USBConnection:
    conn = USBConnection(**kwargs)
    with patch("usb.core.find", return_value=dev):
        conn.open()
    return conn


def test_open_resolves_endpoints(usb_util):
    """IN and OUT endpoints are found by direction."""
    dev = _make_device()
    conn = _open(dev)

    assert conn.connected
    assert conn.endpoints == (0x81, 0x01)
    usb_util.claim.assert_called_once_with(dev, 0)
    dev.set_interface_altsetting.assert_called_once_with(
        interface=0, alternate_setting=0
    )


def test_open_reads_descriptors(usb_util):
    """Device strings are captured at connect time."""
    info = _open(_make_device()).device_info
    assert info.vendor_id == 0x18D1
    assert info.product_id == 0x4EE0
    assert info.manufacturer == "Google"
    assert info.product == "Pixel"
    assert info.serial_number == "ABC123"
    assert info.to_dict()["vendor_id"] == "0x18D1"


def test_open_prefers_fastboot_interface(usb_util):
    """A composite device is driven through its fastboot interface."""
    other = FakeInterface([_endpoint(0x82), _endpoint(0x02)], number=0, cls=0x08, subclass=0x06, protocol=0x50)
    fastboot = FakeInterface([_endpoint(0x83), _endpoint(0x03)], number=1)
    dev = _make_device([other, fastboot])
    conn = _open(dev)

    usb_util.claim.assert_called_once_with(dev, 1)
    assert conn.endpoints == (0x83, 0x03)


def test_open_falls_back_to_first_interface(usb_util):
    """Without a fastboot class interface, interface 0 is used."""
    plain = FakeInterface([_endpoint(0x81), _endpoint(0x01)], cls=0xFF, subclass=0x00, protocol=0x00)
    dev = _make_device([plain])
    assert _open(dev).endpoints == (0x81, 0x01)


def test_open_sets_configuration_when_unconfigured(usb_util):
    """An unconfigured device gets its default configuration."""
    dev = _make_device()
    config = dev.get_active_configuration.return_value
    dev.get_active_configuration.side_effect = [usb.core.USBError("not configured"), config]
    _open(dev)
    dev.set_configuration.assert_called_once()


def test_open_detaches_kernel_driver(usb_util):
    """A bound kernel driver is detached before claiming."""
    dev = _make_device()
    dev.is_kernel_driver_active.return_value = True
    _open(dev)
    dev.detach_kernel_driver.assert_called_once_with(0)


def test_open_no_device():
    """No matching device raises DeviceNotFound."""
    conn = USBConnection()
    with patch("usb.core.find", return_value=None):
        with pytest.raises(DeviceNotFound):
            conn.open()
    assert not conn.connected


def test_open_missing_endpoint(usb_util):
    """An interface without an OUT endpoint is unusable."""
    dev = _make_device([FakeInterface([_endpoint(0x81)])])
    conn = USBConnection()
    with patch("usb.core.find", return_value=dev):
        with pytest.raises(DeviceNotFound):
            conn.open()
    usb_util.release.assert_called_once_with(dev, 0)
    assert not conn.connected


def test_claim_failure_is_transport_failure(usb_util):
    """libusb errors during setup surface as TransportFailure."""
    usb_util.claim.side_effect = usb.core.USBError("Resource busy")
    conn = USBConnection()
    with patch("usb.core.find", return_value=_make_device()):
        with pytest.raises(TransportFailure):
            conn.open()


def test_find_by_class_without_ids():
    """Without ids the device is matched by its fastboot interface."""
    with patch("usb.core.find", return_value=None) as find:
        with pytest.raises(DeviceNotFound):
            USBConnection().open()
    assert find.call_args.kwargs == {"custom_match": _is_fastboot_device}


def test_find_by_ids():
    """Explicit ids are passed straight to pyusb."""
    with patch("usb.core.find", return_value=None) as find:
        with pytest.raises(DeviceNotFound):
            USBConnection(vendor_id=0x18D1, product_id=0x4EE0).open()
    assert find.call_args.kwargs == {"idVendor": 0x18D1, "idProduct": 0x4EE0}


def test_is_fastboot_device():
    """Only devices with a fastboot class interface match."""
    fastboot = FakeConfig([FakeInterface([], cls=FASTBOOT_CLASS, subclass=FASTBOOT_SUBCLASS, protocol=FASTBOOT_PROTOCOL)])
    storage = FakeConfig([FakeInterface([], cls=0x08, subclass=0x06, protocol=0x50)])
    assert _is_fastboot_device([storage, fastboot])
    assert not _is_fastboot_device([storage])


def test_write_and_read(usb_util):
    """Frames go to the OUT endpoint, responses come from IN."""
    dev = _make_device()
    dev.write.return_value = 512
    dev.read.return_value = array("B", b"OKAY")
    conn = _open(dev, timeout_ms=2000)

    assert conn.write(b"\x00" * 512) == 512
    dev.write.assert_called_once_with(0x01, b"\x00" * 512, timeout=2000)

    assert conn.read(256) == b"OKAY"
    dev.read.assert_called_once_with(0x81, 256, timeout=2000)


def test_default_timeout_waits_forever(usb_util):
    """The default timeout is libusb's unlimited wait."""
    dev = _make_device()
    dev.read.return_value = array("B", b"OKAY")
    _open(dev).read(256)
    assert dev.read.call_args.kwargs["timeout"] == 0


def test_read_error_is_transport_failure(usb_util):
    """A failed read is raised, not swallowed."""
    dev = _make_device()
    dev.read.side_effect = usb.core.USBError("No such device")
    conn = _open(dev)
    with pytest.raises(TransportFailure):
        conn.read(256)


def test_write_error_is_transport_failure(usb_util):
    """A failed write is raised."""
    dev = _make_device()
    dev.write.side_effect = usb.core.USBError("Pipe error")
    conn = _open(dev)
    with pytest.raises(TransportFailure):
        conn.write(b"\x00" * 512)


def test_io_when_not_connected():
    """Reads and writes need an open connection."""
    conn = USBConnection()
    with pytest.raises(TransportFailure):
        conn.write(b"\x00")
    with pytest.raises(TransportFailure):
        conn.read(256)


def test_close(usb_util):
    """close() releases the interface once."""
    dev = _make_device()
    conn = _open(dev)
    conn.close()
    conn.close()

    assert not conn.connected
    usb_util.release.assert_called_once_with(dev, 0)
    usb_util.dispose.assert_called_once_with(dev)
