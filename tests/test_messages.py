"""
Unit tests for campaign/messages.py
"""

import base64
import json
import os
import random
import shutil
import tempfile
import unittest
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from campaign.errors import StartupFailure
from campaign.messages import (
    EMOJIS,
    MediaAttachment,
    PhraseSpinner,
    build_payload_factory,
    load_phrases,
)


class TestPhraseSpinner(unittest.TestCase):

    def test_output_is_phrase_with_optional_emoji(self):
        spinner = PhraseSpinner(["Hello there"], rng=random.Random(3))
        for _ in range(50):
            text = spinner.generate()
            self.assertTrue(text == "Hello there" or text[len("Hello there "):] in EMOJIS)

    def test_emoji_probability_extremes(self):
        never = PhraseSpinner(["Hi"], emoji_probability=0.0)
        always = PhraseSpinner(["Hi"], emojis=["✨"], emoji_probability=1.0)
        self.assertEqual(never.generate(), "Hi")
        self.assertEqual(always.generate(), "Hi ✨")

    def test_both_variants_occur(self):
        spinner = PhraseSpinner(["Hi"], rng=random.Random(11))
        outputs = {spinner.generate() == "Hi" for _ in range(100)}
        self.assertEqual(outputs, {True, False})


class FilesTestCase(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def write(self, name, content, mode="w"):
        path = os.path.join(self.tmpdir, name)
        with open(path, mode) as f:
            f.write(content)
        return path


class TestLoadPhrases(FilesTestCase):

    def test_valid_list(self):
        path = self.write("phrases.json", json.dumps(["a", "b"]))
        self.assertEqual(load_phrases(path), ["a", "b"])

    def test_missing_file(self):
        with self.assertRaises(StartupFailure):
            load_phrases(os.path.join(self.tmpdir, "nope.json"))

    def test_invalid_shapes(self):
        for content in ["{bad", "[]", '{"a": 1}', "[1, 2]"]:
            path = self.write("phrases.json", content)
            with self.assertRaises(StartupFailure, msg=content):
                load_phrases(path)


class TestPayloadFactory(FilesTestCase):

    def test_static_text_with_link(self):
        factory = build_payload_factory(static_text="Hello", link="https://example.com")
        payload = factory()
        self.assertEqual(payload.text, "Hello\nhttps://example.com")
        self.assertIsNone(payload.media)

    def test_spinner_from_phrases_file(self):
        path = self.write("phrases.json", json.dumps(["Only phrase"]))
        factory = build_payload_factory(phrases_file=path)
        self.assertTrue(factory().text.startswith("Only phrase"))

    def test_static_text_wins_over_phrases(self):
        path = self.write("phrases.json", json.dumps(["spun"]))
        factory = build_payload_factory(static_text="fixed", phrases_file=path)
        self.assertEqual(factory().text, "fixed")

    def test_image_attached_when_present(self):
        path = self.write("images.webp", b"RIFFxxxxWEBP", mode="wb")
        payload = build_payload_factory(static_text="Hi", image_path=path)()

        self.assertEqual(payload.media.mimetype, "image/webp")
        self.assertEqual(payload.media.filename, "images.webp")
        self.assertEqual(base64.b64decode(payload.media.data), b"RIFFxxxxWEBP")

    def test_missing_image_sends_text_only(self):
        factory = build_payload_factory(static_text="Hi", image_path=os.path.join(self.tmpdir, "none.png"))
        self.assertIsNone(factory().media)

    def test_media_from_file_png(self):
        path = self.write("photo.png", b"\x89PNG", mode="wb")
        self.assertEqual(MediaAttachment.from_file(path).mimetype, "image/png")


if __name__ == "__main__":
    unittest.main()
