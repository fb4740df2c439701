import unittest

from jamlink.active_notes import ActiveNoteRegistry, NoteRecord, note_name, note_name_to_midi


class TestNoteNames(unittest.TestCase):
    def test_names(self):
        self.assertEqual(note_name(60), "C4")
        self.assertEqual(note_name(61), "C#4")
        self.assertEqual(note_name(0), "C-1")
        self.assertEqual(note_name(127), "G9")

    def test_inverse(self):
        for m in range(128):
            self.assertEqual(note_name_to_midi(note_name(m)), m)
        self.assertEqual(note_name_to_midi("Bb3"), 58)
        self.assertIsNone(note_name_to_midi("H2"))
        self.assertIsNone(note_name_to_midi("C"))


class TestActiveNoteRegistry(unittest.TestCase):
    def test_duplicate_attack_rejected_for_every_note(self):
        reg = ActiveNoteRegistry()
        for n in range(128):
            ok, rec = reg.attack(n, 100)
            self.assertTrue(ok)
            again, existing = reg.attack(n, 10)
            self.assertFalse(again)
            # Original record kept
            self.assertEqual(existing.velocity, 100)
        self.assertEqual(len(reg), 128)

    def test_release_then_attack_accepted(self):
        reg = ActiveNoteRegistry()
        reg.attack(60, 90)
        rec = reg.release(60)
        self.assertEqual(rec, NoteRecord(60, "C4", 90))
        self.assertNotIn(60, reg)
        ok, _ = reg.attack(60, 70)
        self.assertTrue(ok)

    def test_stray_release_is_noop(self):
        reg = ActiveNoteRegistry()
        for n in range(128):
            self.assertIsNone(reg.release(n))
        reg.attack(5, 1)
        self.assertIsNotNone(reg.release(5))
        self.assertIsNone(reg.release(5))
        self.assertEqual(len(reg), 0)

    def test_clear(self):
        reg = ActiveNoteRegistry()
        reg.attack(64, 1)
        reg.attack(60, 2)
        removed = reg.clear()
        self.assertEqual([r.midi_number for r in removed], [60, 64])
        self.assertEqual(reg.snapshot(), [])

    def test_out_of_range(self):
        reg = ActiveNoteRegistry()
        with self.assertRaises(ValueError):
            reg.attack(128, 1)
        with self.assertRaises(ValueError):
            reg.attack(60, -1)


if __name__ == "__main__":
    unittest.main()
