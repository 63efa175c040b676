import pytest

from veriface.data_uri import InvalidImagePayload, encode_data_uri, parse_image_data_uri, read_image_file

from conftest import png_bytes


class TestParseImageDataUri:
    def test_valid_png(self):
        payload = parse_image_data_uri("data:image/png;base64,AAA=", "selfieDataUri")
        assert payload.mime_type == "image/png"
        assert payload.data == b"\x00\x00"

    @pytest.mark.parametrize("value", [
        "not-a-data-uri",
        "data:text/plain;base64,AAA=",
        "",
        None,
        42,
    ])
    def test_rejects_non_image(self, value):
        with pytest.raises(InvalidImagePayload) as exc:
            parse_image_data_uri(value, "selfieDataUri")
        assert exc.value.field == "selfieDataUri"
        assert "Selfie must be a valid image data URI" in exc.value.reason

    def test_reports_cctv_field(self):
        with pytest.raises(InvalidImagePayload) as exc:
            parse_image_data_uri("nope", "cctvDataUri")
        assert exc.value.field == "cctvDataUri"
        assert exc.value.reason.startswith("CCTV frame")

    def test_requires_base64_marker(self):
        with pytest.raises(InvalidImagePayload, match="base64"):
            parse_image_data_uri("data:image/png,AAA=", "selfieDataUri")

    def test_rejects_missing_subtype(self):
        with pytest.raises(InvalidImagePayload):
            parse_image_data_uri("data:image/;base64,AAA=", "selfieDataUri")

    def test_rejects_empty_body(self):
        with pytest.raises(InvalidImagePayload, match="no data"):
            parse_image_data_uri("data:image/png;base64,", "selfieDataUri")

    def test_rejects_garbage_body(self):
        with pytest.raises(InvalidImagePayload, match="not valid base64"):
            parse_image_data_uri("data:image/png;base64,@@@@", "selfieDataUri")

    def test_rejects_bad_padding(self):
        with pytest.raises(InvalidImagePayload, match="not valid base64"):
            parse_image_data_uri("data:image/png;base64,AAAAA", "selfieDataUri")

    def test_encode_then_parse(self):
        uri = encode_data_uri(b"\x89PNG", "image/png")
        assert uri.startswith("data:image/png;base64,")
        assert parse_image_data_uri(uri).data == b"\x89PNG"


class TestReadImageFile:
    def test_reads_png(self, tmp_path):
        path = tmp_path / "selfie.png"
        path.write_bytes(png_bytes())
        uri = read_image_file(str(path))
        assert uri.startswith("data:image/png;base64,")
        assert parse_image_data_uri(uri).data == path.read_bytes()

    def test_rejects_non_image_extension(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        with pytest.raises(InvalidImagePayload):
            read_image_file(str(path))
