"""MCP server entry point for the fastboot client.

Exposes the shell verbs (connect, devinfo, upload, ls, fastboot ...) as
tools via the Model Context Protocol using the official Python MCP SDK
with stdio transport.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable

from mcp.server.fastmcp import FastMCP

from .console import OutputSink, render_progress
from .errors import FastbootError
from .models.file_store import FileStore
from .protocol.interpreter import Outcome, Success
from .session import DeviceSession

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "fastboot",
    instructions="MCP server for flashing and booting devices in fastboot mode",
)

# One device at a time; commands are issued sequentially.
_session = DeviceSession()
_files = FileStore()

HELP_TEXT = """Available commands:
  ls       - List uploaded files
  upload   - Upload a file for flashing
  fastboot - Execute fastboot commands (boot, flash <partition> <file>, getvar <name>)
  connect  - Connect a USB device
  devinfo  - Get info about the connected device
  help     - Show this help"""


def _progress_writer(sink: OutputSink) -> Callable[[int, int], None]:
    """Write the progress bar each time its rendering changes."""
    last = ""

    def report(sent: int, total: int) -> None:
        nonlocal last
        line = render_progress(sent, total)
        if line != last:
            sink.write(line)
            last = line

    return report


def _run(action: Callable[[DeviceSession, OutputSink], Outcome]) -> dict[str, Any]:
    """Run one command against the session and shape the tool result."""
    sink = OutputSink()
    _session.output = sink
    try:
        outcome = action(_session, sink).raise_for_failure()
    except (FastbootError, ValueError) as e:
        logger.info("Command failed: %s", e)
        return {"success": False, "error": str(e), "output": sink.lines}

    result: dict[str, Any] = {"success": True, "output": sink.lines}
    if isinstance(outcome, Success):
        result["message"] = outcome.message
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    vendor_id: int | None = None,
    product_id: int | None = None,
) -> dict[str, Any]:
    """Connect to a USB device in fastboot mode.

    Without ids, the first device exposing a fastboot interface is used.
    Any previously connected device is released first.

    Args:
        vendor_id: Optional USB vendor id.
        product_id: Optional USB product id.
    """
    try:
        info = _session.connect(vendor_id, product_id)
    except FastbootError as e:
        return {"connected": False, "error": str(e)}

    result: dict[str, Any] = {"connected": True, "message": "Connected device."}
    result.update(info.to_dict())
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Release the connected device."""
    _session.close()
    return {"disconnected": True}


@mcp.tool()
def get_device_info() -> dict[str, Any]:
    """Report product name, manufacturer and serial number of the device."""
    if not _session.active:
        return {"error": "No device connected."}

    info = _session.device_info
    if info is None:
        return {"connected": True}
    return {
        "connected": True,
        "product": info.product,
        "manufacturer": info.manufacturer,
        "serial_number": info.serial_number,
    }


# ─── FILE TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def upload_file(path: str, name: str | None = None) -> dict[str, Any]:
    """Load a local image into the in-memory file store.

    Args:
        path: Local file path.
        name: Name to store it under; defaults to the file name.
    """
    try:
        stored = _files.load(path, name)
    except FileNotFoundError:
        return {"error": f"File not found: {path}"}
    except ValueError as e:
        return {"error": str(e)}

    result = stored.to_dict()
    result["message"] = f"Uploaded: {stored.name} ({stored.size} bytes)"
    return result


@mcp.tool()
def list_files() -> dict[str, Any]:
    """List uploaded files with size and modification time."""
    return {
        "files": [f.to_dict() for f in _files.list()],
        "listing": _files.format_listing(),
    }


@mcp.tool()
def remove_file(name: str) -> dict[str, Any]:
    """Drop a file from the in-memory store.

    Args:
        name: Stored file name.
    """
    try:
        _files.remove(name)
    except FastbootError as e:
        return {"error": str(e)}
    return {"removed": True, "name": name}


# ─── FASTBOOT TOOLS ──────────────────────────────────────────────────

@mcp.tool()
def fastboot_boot() -> dict[str, Any]:
    """Boot the most recently downloaded image."""
    return _run(lambda session, sink: session.boot())


@mcp.tool()
def fastboot_getvar(name: str) -> dict[str, Any]:
    """Read a bootloader variable such as ``version`` or ``product``.

    Args:
        name: Variable name.
    """
    return _run(lambda session, sink: session.getvar(name))


@mcp.tool()
def fastboot_flash(partition: str, file_name: str) -> dict[str, Any]:
    """Download an uploaded file to the device and flash it to a partition.

    Args:
        partition: Target partition, e.g. ``boot``.
        file_name: Name of a file previously added with ``upload_file``.
    """
    def action(session: DeviceSession, sink: OutputSink) -> Outcome:
        image = _files.get(file_name).content
        return session.flash(partition, image, on_progress=_progress_writer(sink))

    return _run(action)


@mcp.tool()
def fastboot(args: list[str]) -> dict[str, Any]:
    """Run a fastboot command line, e.g. ``["flash", "boot", "boot.img"]``.

    Args:
        args: Subcommand followed by its arguments.
    """
    if not args:
        return {"error": "Usage: fastboot <boot | flash <partition> <file> | getvar <name>>"}

    sub, rest = args[0], args[1:]
    if sub == "boot":
        return fastboot_boot()
    if sub == "flash":
        if len(rest) != 2:
            return {"error": "Usage: fastboot flash <partition> <file>"}
        return fastboot_flash(rest[0], rest[1])
    if sub == "getvar":
        if len(rest) != 1:
            return {"error": "Usage: fastboot getvar <name>"}
        return fastboot_getvar(rest[0])
    return {"error": f"Unknown fastboot command: {sub}"}


@mcp.tool(name="help")
def show_help() -> str:
    """List the available commands."""
    return HELP_TEXT


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("fastboot://device/info")
def resource_device_info() -> str:
    """Connected device descriptors."""
    info = _session.device_info
    if not _session.active or info is None:
        return json.dumps({"connected": _session.active})
    result: dict[str, Any] = {"connected": True}
    result.update(info.to_dict())
    return json.dumps(result)


@mcp.resource("fastboot://files/list")
def resource_files_list() -> str:
    """Files available for flashing."""
    return json.dumps({"files": [f.to_dict() for f in _files.list()]})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def flash_image(partition: str, path: str) -> str:
    """Walk through flashing a local image to a partition.

    Args:
        partition: Target partition.
        path: Local image path.
    """
    return f"""Flash {path} to the {partition} partition.
Steps:
- Use connect to attach the device in fastboot mode
- Use fastboot_getvar with "product" to confirm the right device
- Use upload_file with the image path
- Use fastboot_flash with partition "{partition}" and the uploaded name

Stop and report if any step returns an error. Do not retry a failed flash
without asking."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
