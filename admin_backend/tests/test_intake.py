import unittest

from admin_backend.errors import ValidationError
from admin_backend.intake import (
    IntakeOptions,
    UploadedFile,
    detect_mime_type,
    extract_filename,
    extract_mime_type,
    is_binary_upload,
    process_binary,
    process_multipart,
    validate_files,
)
from admin_backend.tests.support import PNG_BYTES


def uploaded(size=10, mimetype="image/png", field_name="file", name="a.png"):
    return UploadedFile(
        buffer=b"x" * size,
        original_name=name,
        mimetype=mimetype,
        size=size,
        field_name=field_name,
    )


class MimeSniffingTests(unittest.TestCase):
    def test_known_signatures(self):
        cases = {
            PNG_BYTES: "image/png",
            b"\xff\xd8\xff\xe0rest": "image/jpeg",
            b"GIF89a....": "image/gif",
            b"RIFF\x24\x00\x00\x00WEBPVP8 ": "image/webp",
            b'<?xml version="1.0"?><svg></svg>': "image/svg+xml",
            b"<svg xmlns='http://www.w3.org/2000/svg'/>": "image/svg+xml",
            b"%PDF-1.7": "application/pdf",
            b"\x00\x01\x02\x03\x04": "application/octet-stream",
            b"ab": "application/octet-stream",
        }
        for data, expected in cases.items():
            with self.subTest(expected=expected, data=data[:8]):
                self.assertEqual(detect_mime_type(data), expected)

    def test_riff_without_webp_marker_is_not_webp(self):
        self.assertEqual(
            detect_mime_type(b"RIFF\x24\x00\x00\x00WAVEfmt "), "application/octet-stream"
        )

    def test_declared_type_wins_unless_octet_stream(self):
        self.assertEqual(
            extract_mime_type({"content-type": "image/jpeg; charset=binary"}, PNG_BYTES),
            "image/jpeg",
        )
        self.assertEqual(
            extract_mime_type({"content-type": "application/octet-stream"}, PNG_BYTES),
            "image/png",
        )


class HeaderParsingTests(unittest.TestCase):
    def test_filename_from_content_disposition(self):
        self.assertEqual(
            extract_filename({"content-disposition": 'attachment; filename="logo.png"'}),
            "logo.png",
        )
        self.assertEqual(
            extract_filename({"content-disposition": "inline; filename=banner.jpg"}),
            "banner.jpg",
        )

    def test_filename_from_custom_header(self):
        self.assertEqual(extract_filename({"x-filename": "hero.webp"}), "hero.webp")
        self.assertIsNone(extract_filename({}))

    def test_binary_detection(self):
        self.assertTrue(is_binary_upload("image/png"))
        self.assertTrue(is_binary_upload("application/octet-stream"))
        self.assertTrue(is_binary_upload("application/pdf"))
        self.assertTrue(is_binary_upload("application/zip"))
        self.assertFalse(is_binary_upload("multipart/form-data; boundary=x"))
        self.assertFalse(is_binary_upload("application/x-www-form-urlencoded"))
        self.assertFalse(is_binary_upload("application/json"))
        self.assertFalse(is_binary_upload(""))
        self.assertFalse(is_binary_upload(None))


class ProcessingTests(unittest.TestCase):
    def test_binary_body_becomes_single_file(self):
        result = process_binary(PNG_BYTES, {"content-type": "image/png"})

        self.assertEqual(result.upload_method, "binary")
        self.assertEqual(len(result.files), 1)
        upload = result.files[0]
        self.assertTrue(upload.original_name.startswith("upload_"))
        self.assertEqual(upload.mimetype, "image/png")
        self.assertEqual(upload.size, len(PNG_BYTES))
        self.assertEqual(upload.field_name, "file")

    def test_binary_field_name_header(self):
        result = process_binary(
            PNG_BYTES,
            {"content-type": "image/png", "x-field-name": "logo", "x-filename": "l.png"},
        )
        self.assertEqual(result.file_for("logo").original_name, "l.png")

    def test_empty_binary_body_rejected(self):
        with self.assertRaises(ValidationError):
            process_binary(b"", {"content-type": "image/png"})

    def test_multipart_drops_file_fields_from_form_data(self):
        result = process_multipart(
            [uploaded(field_name="logo")], {"logo": "", "title": "Acme"}
        )
        self.assertEqual(result.form_data, {"title": "Acme"})
        self.assertTrue(result.has_files)
        self.assertIsNone(result.file_for("missing"))

    def test_batch_limits(self):
        options = IntakeOptions(max_files=2, max_file_size=100)
        with self.assertRaises(ValidationError):
            validate_files([uploaded(), uploaded(), uploaded()], options)
        with self.assertRaises(ValidationError):
            validate_files([uploaded(size=101)], options)
        with self.assertRaises(ValidationError):
            validate_files([uploaded(size=0)], options)
        with self.assertRaises(ValidationError):
            validate_files(
                [uploaded(mimetype="text/plain")],
                IntakeOptions(allowed_mime_types=["image/png"]),
            )
        self.assertEqual(len(validate_files([uploaded(), uploaded()], options)), 2)

    def test_global_caps_apply_over_options(self):
        with self.assertRaises(ValidationError):
            validate_files([uploaded() for _ in range(51)], IntakeOptions(max_files=500))


if __name__ == "__main__":
    unittest.main()
