import asyncio
import unittest
from unittest import mock

from jamlink.engine import Voice
from jamlink.midi_out import DummyInput, DummyOutput, MidoEngine, open_mido_input, open_mido_output, scale_to_cc
from jamlink.param_map import OscillatorBlend


class CaptureOut:
    def __init__(self):
        self.sent = []

    def send(self, msg):
        self.sent.append(msg)


class TestMidoEngine(unittest.TestCase):
    def _engine(self):
        eng = MidoEngine()
        eng.out = CaptureOut()
        return eng

    def test_voices_map_to_channels(self):
        eng = self._engine()
        eng.attack(Voice.LEFT, "C4", 100 / 127)
        eng.attack(Voice.RIGHT, "C4", 1.0)
        eng.release(Voice.RIGHT, "C4")
        got = [(m.type, m.channel, m.note, m.velocity) for m in eng.out.sent]
        self.assertEqual(got, [("note_on", 0, 60, 100), ("note_on", 1, 60, 127), ("note_off", 1, 60, 0)])

    def test_parameters_become_ccs(self):
        eng = self._engine()
        eng.set_parameter(Voice.LEFT, "filter.frequency", 12000.0)
        eng.set_parameter(Voice.LEFT, "filter.frequency", 20.0)
        eng.set_parameter(Voice.RIGHT, "oscillator.blend", OscillatorBlend("fatsawtooth", 4, 4))
        eng.set_parameter(Voice.RIGHT, "oscillator.blend", OscillatorBlend("sawtooth", 2, 40))
        eng.set_parameter(Voice.RIGHT, "drive.mix", 0.5)  # no CC on the receiving synth
        got = [(m.channel, m.control, m.value) for m in eng.out.sent]
        self.assertEqual(got, [(0, 74, 127), (0, 74, 0), (1, 77, 64), (1, 77, 40)])
        self.assertEqual(eng.get_cc_snapshot(), {0: {74: 0}, 1: {77: 40}})

    def test_release_all(self):
        eng = self._engine()
        eng.release_all(Voice.RIGHT)
        self.assertEqual([(m.channel, m.control) for m in eng.out.sent], [(1, 64), (1, 120), (1, 123)])

    def test_bad_note_name(self):
        eng = self._engine()
        with self.assertRaises(ValueError):
            eng.attack(Voice.LEFT, "X9", 0.5)

    def test_scale_to_cc(self):
        self.assertEqual(scale_to_cc(0.5, 0.0, 1.0), 64)
        self.assertEqual(scale_to_cc(-3, 0.0, 1.0), 0)
        self.assertEqual(scale_to_cc(5, 0.0, 1.0), 127)
        self.assertEqual(scale_to_cc(1.0, 1.0, 1.0), 0)


class TestPortFallbacks(unittest.TestCase):
    def test_missing_requested_port_is_not_ready(self):
        with mock.patch("jamlink.midi_out.mido.get_output_names", return_value=["Other Synth"]):
            eng = MidoEngine("OP-XY")
            self.assertFalse(asyncio.run(eng.start()))
            self.assertIsNone(eng.out)

    def test_no_filter_falls_back_to_dummy(self):
        with mock.patch("jamlink.midi_out.mido.get_output_names", side_effect=OSError("no backend")):
            self.assertIsInstance(open_mido_output(None), DummyOutput)
            eng = MidoEngine()
            self.assertTrue(asyncio.run(eng.start()))
        with mock.patch("jamlink.midi_out.mido.get_input_names", return_value=[]):
            self.assertIsInstance(open_mido_input("x"), DummyInput)


if __name__ == "__main__":
    unittest.main()
