import base64
import unittest
from io import BytesIO

from PIL import Image

from render_ai.models import InlineImage, sniff_mime_type, to_data_uri


def _encoded(fmt: str) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (4, 4), (200, 120, 40)).save(buf, format=fmt)
    return buf.getvalue()


class ModelsUnitTests(unittest.TestCase):
    # User value: uploads without a declared type are still sent with the right MIME type.
    def test_sniff_png_and_jpeg(self):
        self.assertEqual(sniff_mime_type(_encoded("PNG")), "image/png")
        self.assertEqual(sniff_mime_type(_encoded("JPEG")), "image/jpeg")

    def test_unknown_bytes_default_to_png(self):
        self.assertEqual(sniff_mime_type(b"not an image"), "image/png")

    # User value: data URIs from the browser are accepted as-is.
    def test_from_data_uri(self):
        jpeg = _encoded("JPEG")
        uri = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")
        image = InlineImage.from_data_uri(uri)
        self.assertEqual(image.mime_type, "image/jpeg")
        self.assertEqual(image.data, jpeg)
        self.assertEqual(image.to_data_uri(), uri)

    def test_bare_base64_is_sniffed(self):
        png = _encoded("PNG")
        image = InlineImage.from_data_uri(base64.b64encode(png).decode("ascii"))
        self.assertEqual(image.mime_type, "image/png")

    # User value: malformed uploads fail with a clear error before any provider call.
    def test_bad_payloads(self):
        with self.assertRaises(ValueError):
            InlineImage.from_base64("%%%not-base64%%%")
        with self.assertRaises(ValueError):
            InlineImage.from_data_uri("data:image/png,rawbytes")
        with self.assertRaises(ValueError):
            InlineImage.from_bytes(b"")

    def test_to_data_uri_default_mime(self):
        self.assertEqual(to_data_uri(b"abc", None), "data:image/png;base64,YWJj")


if __name__ == "__main__":
    unittest.main()
