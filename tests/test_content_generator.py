import io
import json
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from PIL import Image

from content_generator import ContentGenerator, ContentValidationError, parse_generated_content
from fakes import no_wait_policy
from image_prep import prepare_for_vision
from storage import FileContent

VALID = {
    "title": "Upcycled Tee",
    "description": "<p>Soft cotton.</p>",
    "meta_description": "Upcycled tee",
    "tags": ["upcycled", "tee"],
    "category": "Tops",
    "style": "T-shirt",
    "color": "Blue",
    "pattern": "Striped",
    "metafields": {"fabric": "Cotton", "sleeve_length": "Short", "secret": "nope"},
}


def reply(text):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


def png_bytes(mode="RGBA", size=(40, 30)):
    buffer = io.BytesIO()
    Image.new(mode, size, (255, 0, 0, 128) if mode == "RGBA" else (255, 0, 0)).save(buffer, format="PNG")
    return buffer.getvalue()


class TestParse:
    def test_json_inside_code_fence(self):
        content = parse_generated_content("Here you go:\n```json\n" + json.dumps(VALID) + "\n```")
        assert content.title == "Upcycled Tee"
        assert content.tags == ["upcycled", "tee"]
        assert content.vendor is None

    def test_metafields_are_whitelisted(self):
        content = parse_generated_content(json.dumps(VALID))
        assert content.metafields == {"fabric": "Cotton", "sleeve_length": "Short"}

    def test_comma_separated_tags(self):
        content = parse_generated_content(json.dumps(dict(VALID, tags="a, b ,")))
        assert content.tags == ["a", "b"]

    def test_missing_fields_are_named(self):
        with pytest.raises(ContentValidationError) as excinfo:
            parse_generated_content(json.dumps(dict(VALID, title=" ", tags=[])))
        assert "title" in str(excinfo.value)
        assert "tags" in str(excinfo.value)

    def test_blank_descriptive_fields_are_accepted(self):
        content = parse_generated_content(json.dumps(dict(VALID, pattern="", color=" ", category="", vendor="")))
        assert content.pattern == ""
        assert content.color == ""
        assert content.vendor is None
        assert content.title == "Upcycled Tee"

    def test_descriptive_fields_must_be_present(self):
        data = dict(VALID)
        del data["pattern"]
        with pytest.raises(ContentValidationError) as excinfo:
            parse_generated_content(json.dumps(data))
        assert "pattern" in str(excinfo.value)

    def test_tags_must_be_strings(self):
        with pytest.raises(ContentValidationError):
            parse_generated_content(json.dumps(dict(VALID, tags={"a": 1})))

    def test_no_json(self):
        with pytest.raises(ContentValidationError):
            parse_generated_content("I cannot help with that.")

    def test_broken_json(self):
        with pytest.raises(ContentValidationError):
            parse_generated_content('{"title": "x",}')


class TestGenerate:
    def _generator(self, client, retries=2):
        return ContentGenerator("key", client=client, retry_policy=no_wait_policy(retries=retries))

    def test_text_only_request(self):
        client = MagicMock()
        client.messages.create.return_value = reply(json.dumps(VALID))

        content = self._generator(client).generate({"ProductKey": "ABC123", "Style": "T-shirt"})

        assert content.style == "T-shirt"
        kwargs = client.messages.create.call_args.kwargs
        blocks = kwargs["messages"][0]["content"]
        assert [b["type"] for b in blocks] == ["text"]
        assert '"productKey": "ABC123"' in blocks[0]["text"]

    def test_image_block_comes_first(self):
        client = MagicMock()
        client.messages.create.return_value = reply(json.dumps(VALID))

        self._generator(client).generate({"ProductKey": "A"}, FileContent(png_bytes(), "image/png"))

        blocks = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert blocks[0]["type"] == "image"
        assert blocks[0]["source"]["media_type"] == "image/jpeg"
        assert blocks[1]["type"] == "text"

    def test_undecodable_image_falls_back_to_text(self):
        client = MagicMock()
        client.messages.create.return_value = reply(json.dumps(VALID))

        self._generator(client).generate({"ProductKey": "A"}, FileContent(b"not an image", "image/jpeg"))

        blocks = client.messages.create.call_args.kwargs["messages"][0]["content"]
        assert [b["type"] for b in blocks] == ["text"]

    def test_transient_errors_are_retried(self):
        client = MagicMock()
        client.messages.create.side_effect = [ConnectionError("reset"), reply(json.dumps(VALID))]

        assert self._generator(client).generate({"ProductKey": "A"}).title == "Upcycled Tee"
        assert client.messages.create.call_count == 2

    def test_invalid_reply_is_not_retried(self):
        client = MagicMock()
        client.messages.create.return_value = reply("{}")

        with pytest.raises(ContentValidationError):
            self._generator(client).generate({"ProductKey": "A"})
        assert client.messages.create.call_count == 1


class TestImagePrep:
    def test_flattens_and_converts_to_jpeg(self):
        data, media_type = prepare_for_vision(png_bytes(), "image/png")
        assert media_type == "image/jpeg"
        image = Image.open(io.BytesIO(data))
        assert image.format == "JPEG"
        assert image.mode == "RGB"

    def test_large_images_are_scaled_down(self):
        data, _ = prepare_for_vision(png_bytes("RGB", (3000, 1500)), "image/png")
        assert max(Image.open(io.BytesIO(data)).size) == 1568
