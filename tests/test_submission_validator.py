import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from screener.schemas.screening import ResumeUpload  # noqa: E402
from screener.services.submission_validator import (  # noqa: E402
    RawSubmission,
    SubmissionValidationError,
    honeypot_result,
    is_honeypot_triggered,
    raw_submission_from_json,
    validate_submission,
)

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\n%%EOF"


def _raw(**overrides) -> RawSubmission:
    values = {
        "full_name": "Jane Doe",
        "email": "jane.doe@acme.io",
        "job_description": "Senior Backend Engineer\nPython, SQL, AWS.",
        "resume_file": ResumeUpload(filename="jane.pdf", content_type="application/pdf", content=PDF_BYTES),
    }
    values.update(overrides)
    return RawSubmission(**values)


class SubmissionValidatorTests(unittest.TestCase):
    def assertRejected(self, raw: RawSubmission, code: str, **kwargs) -> SubmissionValidationError:
        with self.assertRaises(SubmissionValidationError) as ctx:
            validate_submission(raw, **kwargs)
        self.assertEqual(ctx.exception.code, code)
        self.assertEqual(ctx.exception.status_code, 400)
        return ctx.exception

    def test_valid_multipart_submission(self):
        submission = validate_submission(_raw())
        self.assertEqual(submission.full_name, "Jane Doe")
        self.assertEqual(submission.resume_file.filename, "jane.pdf")
        self.assertIsNone(submission.resume_text)

    def test_missing_fields_are_listed(self):
        exc = self.assertRejected(_raw(full_name="", job_description=""), "missing_fields")
        self.assertIn("Full Name", str(exc))
        self.assertIn("job_description", str(exc))

    def test_email_format_is_checked_before_lengths(self):
        self.assertRejected(_raw(email="not-an-email", full_name="x" * 500), "invalid_email")

    def test_placeholder_emails_are_rejected(self):
        for email in ("fallback@email.com", "Test@Test.com", "example@example.com"):
            with self.subTest(email=email):
                self.assertRejected(_raw(email=email), "placeholder_email")

    def test_length_ceilings(self):
        self.assertRejected(_raw(full_name="x" * 201), "input_too_long")
        self.assertRejected(_raw(job_description="y" * 10001), "input_too_long")
        validate_submission(_raw(full_name="x" * 200, job_description="y" * 10000))

    def test_resume_file_is_required(self):
        self.assertRejected(_raw(resume_file=None), "missing_resume")

    def test_non_pdf_extension_or_mime_is_rejected(self):
        docx = ResumeUpload(filename="jane.docx", content_type="application/pdf", content=PDF_BYTES)
        self.assertRejected(_raw(resume_file=docx), "invalid_file_type")

        wrong_mime = ResumeUpload(filename="jane.pdf", content_type="text/plain", content=PDF_BYTES)
        self.assertRejected(_raw(resume_file=wrong_mime), "invalid_file_type")

    def test_oversized_file_is_rejected(self):
        upload = ResumeUpload(filename="jane.pdf", content_type="application/pdf", content=PDF_BYTES + b"0" * 64)
        exc = self.assertRejected(_raw(resume_file=upload), "file_too_large", max_file_bytes=32)
        self.assertIn("Maximum size", str(exc))

    def test_pdf_signature_is_required(self):
        upload = ResumeUpload(filename="jane.pdf", content_type="application/pdf", content=b"MZ\x90\x00binary")
        self.assertRejected(_raw(resume_file=upload), "invalid_file_type")

    def test_json_submission_requires_resume_text(self):
        raw = raw_submission_from_json(
            {"fullName": "Jane Doe", "email": "jane.doe@acme.io", "jobDescription": "Data Engineer"}
        )
        self.assertRejected(raw, "missing_resume")

        raw.resume_text = "r" * 50001
        self.assertRejected(raw, "input_too_long")

        raw.resume_text = "Seven years of Python and Spark."
        submission = validate_submission(raw)
        self.assertIsNone(submission.resume_file)
        self.assertEqual(submission.resume_text, "Seven years of Python and Spark.")

    def test_json_accepts_form_style_keys(self):
        raw = raw_submission_from_json(
            {
                "Full Name": "  Jane Doe ",
                "Email Address": "jane.doe@acme.io",
                "job_description": "Data Engineer",
                "resumeText": "Spark",
            }
        )
        self.assertEqual(raw.full_name, "Jane Doe")
        self.assertFalse(raw.is_multipart)
        self.assertEqual(validate_submission(raw).email, "jane.doe@acme.io")

    def test_honeypot_detection_and_neutral_result(self):
        self.assertFalse(is_honeypot_triggered(_raw()))
        self.assertTrue(is_honeypot_triggered(_raw(honeypot="https://spam.example")))

        result = honeypot_result()
        self.assertEqual(result.normalized_verdict, "Hold")
        self.assertEqual(result.overall_score, 0)
        self.assertEqual(result.summary, "Application received and under review.")


if __name__ == "__main__":
    unittest.main()
