"""
actuators.py


Turns resolved (string, fret) decisions into real input: mouse and keyboard
events for an on-screen instrument (through the OS or as X11 events sent to
its window), or packets for a microcontroller driving the instrument over
serial.
"""

import logging
import struct                                        # Binary data packing for serial packets.
import time                                          # Press/release hold timing.

import serial                                        # Serial communication support.
from Xlib import X, display as xdisplay, error as xerror
from Xlib.protocol import event as xevent

from .errors import ActuatorError
from .fretboard import FRETS_PER_STRING, NUM_STRINGS

log = logging.getLogger(__name__)

OPEN_ALL = NUM_STRINGS                               # Pseudo-string: "all strings open" control.

# --- Base interface -----------------------------------------------------------


class Actuator:
    """
    Delivers actions for one instrument.

    Fret memory lives here: set_position() only performs a positioning action
    when the requested fret differs from the last one set on that string.
    """
    name = "base"
    blocks = False                                   # True when actuate()/accent() hold for the delay.

    def __init__(self, input_delay_ms: int = 25):
        self.input_delay_ms = int(input_delay_ms)
        self.positions: dict[int, int] = {}          # string -> last fret sent.

    @property
    def hold_us(self) -> int:
        """Time one actuate()/accent() call spends holding the input."""
        return self.input_delay_ms * 1000 if self.blocks else 0

    def set_position(self, string: int, fret: int) -> bool:
        """Move `string` to `fret`. Returns False when it was already there."""
        _check_string(string)
        if not 0 <= fret < FRETS_PER_STRING:
            raise ValueError(f"Fret must be in 0-{FRETS_PER_STRING - 1}, got {fret}")
        if self.positions.get(string) == fret:
            return False
        self._send_position(string, fret)
        self.positions[string] = fret
        return True

    def reset_positions(self) -> None:
        """Put every string back to open with a single control action."""
        self._send_position(OPEN_ALL, 0)
        self.positions = {s: 0 for s in range(NUM_STRINGS)}

    def actuate(self, string: int) -> None:
        _check_string(string)
        self._strum(string)

    def accent(self) -> None:
        self._accent()

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # Subclass hooks

    def _send_position(self, string: int, fret: int) -> None:
        raise NotImplementedError

    def _strum(self, string: int) -> None:
        raise NotImplementedError

    def _accent(self) -> None:
        raise NotImplementedError


def _check_string(string: int) -> None:
    if not 0 <= string < NUM_STRINGS:
        raise ValueError(f"String must be in 0-{NUM_STRINGS - 1}, got {string}")


# --- Visible input (OS mouse + keyboard) --------------------------------------

# Reference layout of the on-screen fretboard at 2560x1440.
REF_WIDTH, REF_HEIGHT = 2560.0, 1440.0
LEFT_OFFSET   = 460.0                                # Offset from the left where the strings start.
TOP_OFFSET    = 130.0                                # Offset from the top where the frets start.
STRING_GAP    = 44.0                                 # Distance centre to centre of the strings.
FRET_GAP      = 82.0                                 # Distance centre to centre of the frets.

STRUM_KEYS = ('q', 'w', 'e', 'r', 't', 'y')          # String 0 (low E) to string 5.
ACCENT_KEY = 'g'


def fret_coordinates(window, string: int, fret: int) -> tuple[int, int]:
    """Screen position of (string, fret) inside window = (x, y, width, height)."""
    x, y, width, height = window
    scale_x = width / REF_WIDTH
    scale_y = height / REF_HEIGHT
    fret_x = x + int(LEFT_OFFSET * scale_x) + string * int(STRING_GAP * scale_x)
    fret_y = y + int(TOP_OFFSET * scale_y) + fret * int(FRET_GAP * scale_y)
    return fret_x, fret_y


class KeyboardActuator(Actuator):
    """
    Clicks fret positions with the mouse and strums with key presses, using
    the standard OS input injection of pynput.
    """
    name = "keyboard"
    blocks = True

    def __init__(self, window, input_delay_ms: int = 25, keyboard=None, mouse=None, button=None):
        super().__init__(input_delay_ms)
        self.window = tuple(window)
        if keyboard is None or mouse is None or button is None:
            try:
                from pynput import keyboard as pkeyboard, mouse as pmouse
            except ImportError as e:
                # pynput needs a display server backend at import time
                raise ActuatorError(f"Keyboard actuator unavailable: {e}") from e
            keyboard = keyboard or pkeyboard.Controller()
            mouse = mouse or pmouse.Controller()
            button = button or pmouse.Button.left
        self.keyboard = keyboard
        self.mouse = mouse
        self.button = button

    def _send_position(self, string, fret):
        fret_x, fret_y = fret_coordinates(self.window, string, fret)
        log.debug("[fret] string %d fret %d -> x: %d y: %d", string, fret, fret_x, fret_y)
        try:
            self.mouse.position = (fret_x, fret_y)
            self.mouse.click(self.button)
        except Exception as e:
            raise ActuatorError(f"Mouse input failed: {e}") from e

    def _tap(self, key):
        try:
            self.keyboard.press(key)
            # The target reads input once per frame, so the key must stay
            # down long enough to be seen.
            time.sleep(self.input_delay_ms / 1000.0)
            self.keyboard.release(key)
        except Exception as e:
            raise ActuatorError(f"Keyboard input failed for '{key}': {e}") from e

    def _strum(self, string):
        self._tap(STRUM_KEYS[string])

    def _accent(self):
        self._tap(ACCENT_KEY)


# --- Low-level protocol (X11 events sent to the target window) ----------------

# X keycodes of the strum and accent keys on a standard US layout.
X11_STRUM_KEYCODES = (24, 25, 26, 27, 28, 29)        # q w e r t y
X11_ACCENT_KEYCODE = 42                              # g


class X11Actuator(Actuator):
    """
    Builds X11 key and button events and sends them straight to one window
    with XSendEvent, so the pointer never moves and other windows can keep
    the focus.
    """
    name = "x11"
    blocks = True

    def __init__(self, window, input_delay_ms: int = 25, window_id=None, display=None):
        super().__init__(input_delay_ms)
        self.window = tuple(window)
        if display is None:
            try:
                display = xdisplay.Display()
            except (xerror.DisplayError, xerror.ConnectionClosedError, OSError) as e:
                raise ActuatorError(f"Failed to open X display: {e}") from e
        self.display = display
        self.root = display.screen().root
        if window_id is None:
            target = display.get_input_focus().focus
            if isinstance(target, int):
                raise ActuatorError("No focused window to send input to, set window_id")
        else:
            target = display.create_resource_object('window', int(window_id))
        self.target = target
        log.info("[x11] Sending input to window 0x%x", self.target.id)

    def _send(self, event_class, mask, detail, x=0, y=0, root_x=0, root_y=0):
        ev = event_class(
            time=X.CurrentTime, root=self.root.id, window=self.target.id,
            child=X.NONE, root_x=root_x, root_y=root_y, event_x=x, event_y=y,
            state=0, same_screen=1, detail=detail)
        try:
            self.target.send_event(ev, event_mask=mask, propagate=True)
            self.display.flush()
        except (xerror.XError, xerror.ConnectionClosedError, OSError) as e:
            raise ActuatorError(f"X11 input failed: {e}") from e

    def _send_position(self, string, fret):
        root_x, root_y = fret_coordinates(self.window, string, fret)
        x, y = root_x - self.window[0], root_y - self.window[1]
        log.debug("[fret] string %d fret %d -> x: %d y: %d", string, fret, x, y)
        self._send(xevent.ButtonPress, X.ButtonPressMask, X.Button1, x, y, root_x, root_y)
        self._send(xevent.ButtonRelease, X.ButtonReleaseMask, X.Button1, x, y, root_x, root_y)

    def _tap(self, keycode):
        self._send(xevent.KeyPress, X.KeyPressMask, keycode)
        # The target reads input once per frame.
        time.sleep(self.input_delay_ms / 1000.0)
        self._send(xevent.KeyRelease, X.KeyReleaseMask, keycode)

    def _strum(self, string):
        self._tap(X11_STRUM_KEYCODES[string])

    def _accent(self):
        self._tap(X11_ACCENT_KEYCODE)

    def close(self):
        self.display.close()


# --- Serial microcontroller ---------------------------------------------------

# Packet markers matching the controller firmware.
POSITION_MARKER = 0xBB                               # [marker][string][fret]
STRUM_MARKER    = 0xBC                               # [marker][string][hold ms, uint16]
ACCENT_MARKER   = 0xBD                               # [marker][hold ms, uint16]
STOP_MARKER     = 0xEE                               # Stop all controller actions.
RESET_MARKER    = 0xEF                               # Return every string to open.


def connect(port: str, baud: int) -> serial.Serial:
    """
    Open and initialise the serial connection to the controller.
    """
    ser = serial.Serial(port, baud, timeout=1)       # Open serial port with timeout.
    ser.reset_input_buffer()                         # Flush any incoming data from buffer.
    ser.reset_output_buffer()                        # Clear any pending output data.
    time.sleep(1)                                    # Give the controller time to reboot.
    return ser


class SerialActuator(Actuator):
    """
    Sends one packet per action to a controller that fingers and picks the
    strings itself. The controller owns press/release timing.
    """
    name = "serial"

    def __init__(self, port: str = "/dev/ttyACM0", baud: int = 115200,
                 input_delay_ms: int = 25, ser=None):
        super().__init__(input_delay_ms)
        if ser is None:
            try:
                ser = connect(port, baud)
            except (serial.SerialException, OSError) as e:
                raise ActuatorError(f"Could not open serial port {port}: {e}") from e
        self.ser = ser

    def _write(self, pkt: bytes) -> None:
        try:
            self.ser.write(pkt)
        except (serial.SerialException, OSError) as e:
            raise ActuatorError(f"Serial write failed: {e}") from e
        self._drain()

    def _drain(self) -> None:
        # Log anything the controller printed back.
        while self.ser.in_waiting:
            line = self.ser.readline().decode('utf-8', 'replace').strip()
            if line:
                log.debug("[serial] From controller: %s", line)

    def _hold(self) -> int:
        return min(self.input_delay_ms, 0xFFFF)

    def _send_position(self, string, fret):
        if string == OPEN_ALL:
            self._write(struct.pack('<B', RESET_MARKER))
            log.debug("[serial] Sent RESET")
            return
        self._write(struct.pack('<BBB', POSITION_MARKER, string, fret))
        log.debug("[serial] Position S=%d F=%d", string, fret)

    def _strum(self, string):
        self._write(struct.pack('<BBH', STRUM_MARKER, string, self._hold()))

    def _accent(self):
        self._write(struct.pack('<BH', ACCENT_MARKER, self._hold()))

    def close(self):
        try:
            self.ser.write(bytes([STOP_MARKER]))
            log.debug("[serial] Sent STOP")
        except (serial.SerialException, OSError) as e:
            log.warning("[serial] Could not send STOP: %s", e)
        finally:
            self.ser.close()


# --- Dry run ------------------------------------------------------------------


class DryRunActuator(Actuator):
    """Logs and records actions without producing any input."""
    name = "dry-run"

    def __init__(self, input_delay_ms: int = 25):
        super().__init__(input_delay_ms)
        self.actions: list[tuple] = []

    def _send_position(self, string, fret):
        self.actions.append(("position", string, fret))
        log.info("[dry-run] position string=%d fret=%d", string, fret)

    def _strum(self, string):
        self.actions.append(("strum", string))
        log.info("[dry-run] strum string=%d", string)

    def _accent(self):
        self.actions.append(("accent",))
        log.info("[dry-run] accent")


def create_actuator(settings, input_delay_ms: int = 25) -> Actuator:
    """Build the actuator named by an ActuatorSettings."""
    if settings.kind == "keyboard":
        return KeyboardActuator(settings.window, input_delay_ms)
    if settings.kind == "x11":
        return X11Actuator(settings.window, input_delay_ms, settings.window_id)
    if settings.kind == "serial":
        return SerialActuator(settings.serial_port, settings.baud_rate, input_delay_ms)
    if settings.kind == "dry-run":
        return DryRunActuator(input_delay_ms)
    raise ActuatorError(f"Unknown actuator '{settings.kind}'")
