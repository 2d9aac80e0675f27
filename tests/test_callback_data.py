import unittest

from interfaces.telegram.callback_data import (
    encode_passkey_action,
    encode_pin_key,
    parse_passkey_action,
    parse_pin_key,
)


class CallbackDataTests(unittest.TestCase):
    def test_pin_keys(self):
        self.assertEqual(encode_pin_key(42, "7"), "pin:42:7")
        self.assertEqual(parse_pin_key("pin:42:del"), (42, "del"))

    def test_passkey_actions(self):
        self.assertEqual(encode_passkey_action(42, "skip"), "pk:42:skip")
        self.assertEqual(parse_passkey_action("pk:42:create"), (42, "create"))

    def test_rejects_malformed_data(self):
        for data in ("pin:42", "pin:42:x", "pk:42:7", "pin:abc:1", "from:1:to:2:3"):
            with self.subTest(data=data):
                with self.assertRaises(ValueError):
                    if data.startswith("pk"):
                        parse_passkey_action(data)
                    else:
                        parse_pin_key(data)

    def test_rejects_unknown_keys_when_encoding(self):
        with self.assertRaises(ValueError):
            encode_pin_key(42, "10")
        with self.assertRaises(ValueError):
            encode_passkey_action(42, "later")


if __name__ == "__main__":
    unittest.main()
