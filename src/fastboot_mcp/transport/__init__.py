"""USB transport for bootloader devices."""

from .usb_connection import DeviceInfo, USBConnection
