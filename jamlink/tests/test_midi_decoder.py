import unittest

import mido

from jamlink.events import ControlChange, ControlChannel, DecodeError, NoteOff, NoteOn, Origin
from jamlink.midi_decoder import decode, decode_message


class TestMidiDecoder(unittest.TestCase):
    def test_note_on_and_velocity_zero(self):
        self.assertEqual(decode([0x90, 60, 100]), NoteOn(60, 100, origin=Origin.LOCAL))
        # Any channel: only the high nibble matters
        self.assertEqual(decode([0x93, 64, 1]), NoteOn(64, 1))
        # Velocity-zero note-on is a note-off
        self.assertEqual(decode([0x91, 60, 0]), NoteOff(60))

    def test_note_off(self):
        self.assertEqual(decode(bytes([0x80, 60, 64])), NoteOff(60))

    def test_cc_table_shares_cutoff(self):
        self.assertEqual(decode([0xB0, 1, 50]), ControlChange(ControlChannel.CUTOFF, 50, controller=1))
        self.assertEqual(decode([0xB0, 74, 50]), ControlChange(ControlChannel.CUTOFF, 50, controller=74))
        self.assertEqual(decode([0xB0, 71, 5]).channel, ControlChannel.RESONANCE)
        self.assertEqual(decode([0xB0, 76, 5]).channel, ControlChannel.DRIVE)
        self.assertEqual(decode([0xB0, 77, 5]).channel, ControlChannel.OSCILLATOR_MIX)
        self.assertEqual(decode([0xB0, 78, 5]).channel, ControlChannel.VIBRATO)

    def test_unmapped_cc_and_other_status_are_dropped(self):
        self.assertIsNone(decode([0xB0, 7, 100]))
        self.assertIsNone(decode([0xE0, 0, 64]))  # pitch bend
        self.assertIsNone(decode([0xA0, 60, 10]))  # poly aftertouch

    def test_malformed_raises_decode_error(self):
        with self.assertRaises(DecodeError):
            decode([0x90, 60])
        with self.assertRaises(DecodeError):
            decode([0x90, 60, 100, 0])
        with self.assertRaises(DecodeError):
            decode([])
        with self.assertRaises(DecodeError):
            decode([0x90, 200, 10])

    def test_decode_message_from_port(self):
        self.assertEqual(decode_message(mido.Message("note_on", note=62, velocity=90, channel=4)), NoteOn(62, 90))
        self.assertEqual(decode_message(mido.Message("note_on", note=62, velocity=0)), NoteOff(62))
        self.assertEqual(decode_message(mido.Message("note_off", note=62)), NoteOff(62))
        self.assertEqual(
            decode_message(mido.Message("control_change", control=74, value=12)),
            ControlChange(ControlChannel.CUTOFF, 12, controller=74),
        )
        self.assertIsNone(decode_message(mido.Message("clock")))


if __name__ == "__main__":
    unittest.main()
