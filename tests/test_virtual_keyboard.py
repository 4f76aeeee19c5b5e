import unittest
from unittest import mock

from evdev import UInputError, ecodes

from yolkbridge.errors import VirtualKeyboardError
from yolkbridge.hid.keys import LogicalKey
from yolkbridge.virtual_keyboard import EVDEV_CODES, UInputKeyboard


class TestEvdevCodes(unittest.TestCase):
    def test_every_key_has_a_distinct_code(self) -> None:
        self.assertEqual(set(EVDEV_CODES), set(LogicalKey))
        self.assertEqual(len(set(EVDEV_CODES.values())), len(LogicalKey))

    def test_spot_checks(self) -> None:
        self.assertEqual(EVDEV_CODES[LogicalKey.A], ecodes.KEY_A)
        self.assertEqual(EVDEV_CODES[LogicalKey.DIGIT_0], ecodes.KEY_0)
        self.assertEqual(EVDEV_CODES[LogicalKey.LEFT_SHIFT], ecodes.KEY_LEFTSHIFT)
        self.assertEqual(EVDEV_CODES[LogicalKey.RIGHT_META], ecodes.KEY_RIGHTMETA)
        self.assertEqual(EVDEV_CODES[LogicalKey.ESCAPE], ecodes.KEY_ESC)
        self.assertEqual(EVDEV_CODES[LogicalKey.CAPS_LOCK], ecodes.KEY_CAPSLOCK)
        self.assertEqual(EVDEV_CODES[LogicalKey.F12], ecodes.KEY_F12)


class TestUInputKeyboard(unittest.TestCase):
    def test_create_registers_all_key_codes(self) -> None:
        with mock.patch("yolkbridge.virtual_keyboard.UInput") as uinput:
            kb = UInputKeyboard.create("Yolk-Keyboard")

        caps = uinput.call_args.args[0]
        self.assertEqual(set(caps[ecodes.EV_KEY]), set(EVDEV_CODES.values()))
        self.assertEqual(uinput.call_args.kwargs["name"], "Yolk-Keyboard")
        self.assertEqual(kb.name, "Yolk-Keyboard")
        self.assertTrue(kb.is_open)

    def test_create_failure(self) -> None:
        for exc in (PermissionError(13, "Permission denied"), UInputError("/dev/uinput cannot be opened")):
            with self.subTest(exc=exc):
                with mock.patch("yolkbridge.virtual_keyboard.UInput", side_effect=exc):
                    with self.assertRaises(VirtualKeyboardError):
                        UInputKeyboard.create("Yolk-Keyboard")

    def test_press_release_and_sync(self) -> None:
        ui = mock.Mock()
        kb = UInputKeyboard(ui, "Yolk-Keyboard")

        kb.press(LogicalKey.LEFT_SHIFT)
        kb.press(LogicalKey.A)
        kb.release(LogicalKey.A)
        kb.synchronize()

        self.assertEqual(
            ui.mock_calls,
            [
                mock.call.write(ecodes.EV_KEY, ecodes.KEY_LEFTSHIFT, 1),
                mock.call.write(ecodes.EV_KEY, ecodes.KEY_A, 1),
                mock.call.write(ecodes.EV_KEY, ecodes.KEY_A, 0),
                mock.call.syn(),
            ],
        )

    def test_close_is_idempotent(self) -> None:
        ui = mock.Mock()
        kb = UInputKeyboard(ui, "Yolk-Keyboard")
        kb.close()
        kb.close()
        ui.close.assert_called_once_with()
        self.assertFalse(kb.is_open)

    def test_use_after_close(self) -> None:
        kb = UInputKeyboard(mock.Mock(), "Yolk-Keyboard")
        kb.close()
        with self.assertRaises(VirtualKeyboardError):
            kb.press(LogicalKey.A)
        with self.assertRaises(VirtualKeyboardError):
            kb.synchronize()

    def test_close_error_is_logged(self) -> None:
        ui = mock.Mock()
        ui.close.side_effect = OSError(19, "No such device")
        kb = UInputKeyboard(ui, "Yolk-Keyboard")
        with self.assertLogs("yolkbridge.virtual_keyboard", level="WARNING"):
            kb.close()
        self.assertFalse(kb.is_open)


if __name__ == "__main__":
    unittest.main()
