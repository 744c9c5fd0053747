"""Protocol layer: frame codec, command builders, response interpreter, transfers."""

from .framing import FRAME_SIZE, Response, ResponseType, decode_response, encode_frame
from .commands import Command, build_command
from .interpreter import Failure, Outcome, Success, TransferRequested, read_response
from .transfer import TransferSession, download, plan_transfer
