import io
import os
import sys
import threading
import unittest

from depsync.schedule.listener import KeyPressListener


@unittest.skipIf(sys.platform == "win32", "uses POSIX pipes with select()")
class TestKeyPressListener(unittest.TestCase):
    def setUp(self) -> None:
        read_fd, write_fd = os.pipe()
        self.reader = os.fdopen(read_fd, "r")
        self.writer = os.fdopen(write_fd, "w")

    def tearDown(self) -> None:
        for f in (self.reader, self.writer):
            try:
                f.close()
            except OSError:
                pass

    def test_enter_sets_cancel(self) -> None:
        cancel = threading.Event()
        with KeyPressListener(cancel, stream=self.reader, poll_interval=0.01):
            self.writer.write("\n")
            self.writer.flush()
            self.assertTrue(cancel.wait(timeout=2))

    def test_no_input_leaves_cancel_unset(self) -> None:
        cancel = threading.Event()
        with KeyPressListener(cancel, stream=self.reader, poll_interval=0.01):
            self.assertFalse(cancel.wait(timeout=0.05))
        self.assertFalse(cancel.is_set())

    def test_end_of_input_does_not_cancel(self) -> None:
        cancel = threading.Event()
        self.writer.close()
        with KeyPressListener(cancel, stream=self.reader, poll_interval=0.01):
            self.assertFalse(cancel.wait(timeout=0.05))
        self.assertFalse(cancel.is_set())

    def test_input_after_stop_is_left_for_the_next_reader(self) -> None:
        cancel = threading.Event()
        with KeyPressListener(cancel, stream=self.reader, poll_interval=0.01):
            pass
        self.writer.write("y\n")
        self.writer.flush()
        self.assertEqual(self.reader.readline(), "y\n")
        self.assertFalse(cancel.is_set())


class TestKeyPressListenerStream(unittest.TestCase):
    def test_unselectable_stream_stops_quietly(self) -> None:
        cancel = threading.Event()
        # StringIO has no fileno(), so select() fails and the watcher exits.
        with KeyPressListener(cancel, stream=io.StringIO(""), poll_interval=0.01):
            pass
        self.assertFalse(cancel.is_set())


if __name__ == "__main__":
    unittest.main()
