import json
import sys
import unittest
from pathlib import Path

import httpx

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from screener.core.candidate_store import CandidateStore  # noqa: E402
from screener.integrations.email import EmailClient  # noqa: E402
from screener.schemas.screening import CanonicalScreeningResult, SubmissionInput  # noqa: E402
from screener.services.notifier import (  # noqa: E402
    NotificationFailure,
    Notifier,
    SUBJECTS,
    SentGuard,
    decide_notification,
    render_interview_email,
    render_rejection_email,
)


def make_result(score: int, normalized: str = "Hold", reason: str = "Reasonable fit.", steps=None):
    return CanonicalScreeningResult(
        overall_score=score,
        verdict=normalized,
        normalized_verdict=normalized,
        summary=reason,
        short_reason=reason,
        recommended_next_steps=steps if steps is not None else ["Prepare a portfolio"],
    )


class RecordingEmailApi:
    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.status_code >= 400:
            return httpx.Response(self.status_code, json={"message": "domain not verified"})
        return httpx.Response(self.status_code, json={"id": f"email-{len(self.requests)}"})


def make_client(api: RecordingEmailApi, api_key: str | None = "re_test_key") -> EmailClient:
    return EmailClient(
        api_key=api_key,
        api_url="https://email.test/emails",
        sender="ResumeScreen <onboarding@resend.dev>",
        transport=httpx.MockTransport(api),
    )


class DecideNotificationTests(unittest.TestCase):
    def test_score_thresholds(self):
        self.assertEqual(decide_notification(make_result(70)), "interview")
        self.assertIsNone(decide_notification(make_result(69)))
        self.assertIsNone(decide_notification(make_result(40)))
        self.assertEqual(decide_notification(make_result(39)), "rejection")

    def test_verdict_overrides_middle_scores(self):
        self.assertEqual(decide_notification(make_result(55, "Interview")), "interview")
        self.assertEqual(decide_notification(make_result(55, "Reject")), "rejection")

    def test_interview_wins_ties(self):
        self.assertEqual(decide_notification(make_result(75, "Reject")), "interview")
        self.assertEqual(decide_notification(make_result(10, "Interview")), "interview")


class TemplateTests(unittest.TestCase):
    def test_user_supplied_strings_are_escaped(self):
        result = make_result(90, "Interview", reason="<b>Great</b> fit", steps=["<script>x</script>"])
        html = render_interview_email('Bob "Evil" <script>', result)

        self.assertIn("Bob &quot;Evil&quot; &lt;script&gt;", html)
        self.assertIn("&lt;b&gt;Great&lt;/b&gt; fit", html)
        self.assertIn("<li>&lt;script&gt;x&lt;/script&gt;</li>", html)
        self.assertNotIn("<script>", html)
        self.assertIn("90/100", html)

    def test_rejection_without_steps_omits_suggestions(self):
        html = render_rejection_email("Ann", make_result(20, "Reject", steps=[]))
        self.assertIn("Thank You, Ann", html)
        self.assertNotIn("Suggestions for Future Applications", html)


class NotifierTests(unittest.TestCase):
    def setUp(self):
        self.store = CandidateStore(":memory:")
        self.api = RecordingEmailApi()
        self.notifier = Notifier(make_client(self.api), self.store)

    def _candidate(self, result: CanonicalScreeningResult) -> str:
        submission = SubmissionInput(
            full_name="Jane Doe",
            email="jane@acme.io",
            job_description="Backend Engineer",
            resume_text="Python",
        )
        return self.store.create_candidate(submission, result, source="webhook").id

    def test_sends_interview_email_and_sets_flag(self):
        candidate_id = self._candidate(make_result(82, "Interview"))
        outcome = self.notifier.notify_candidate(candidate_id)

        self.assertEqual(outcome.status, "sent")
        self.assertEqual(outcome.email_type, "interview")
        self.assertEqual(outcome.email_id, "email-1")
        self.assertEqual(self.api.requests[0]["to"], ["jane@acme.io"])
        self.assertEqual(self.api.requests[0]["subject"], SUBJECTS["interview"])
        self.assertTrue(self.store.get_candidate(candidate_id).interview_email_sent)

    def test_second_dispatch_is_not_sent(self):
        candidate_id = self._candidate(make_result(20, "Reject"))
        self.assertEqual(self.notifier.notify_candidate(candidate_id).status, "sent")
        self.assertEqual(self.notifier.notify_candidate(candidate_id).status, "already_sent")

        # A fresh notifier has no in-memory claims; the durable flag still blocks it.
        fresh = Notifier(make_client(self.api), self.store)
        self.assertEqual(fresh.notify_candidate(candidate_id).status, "already_sent")
        self.assertEqual(len(self.api.requests), 1)

    def test_middle_band_is_not_eligible(self):
        candidate_id = self._candidate(make_result(55, "Hold"))
        outcome = self.notifier.notify_candidate(candidate_id)
        self.assertEqual(outcome.status, "not_eligible")
        self.assertEqual(self.api.requests, [])

    def test_unconfigured_transport_skips_and_leaves_flags(self):
        notifier = Notifier(make_client(self.api, api_key=None), self.store)
        candidate_id = self._candidate(make_result(90, "Interview"))

        outcome = notifier.notify_candidate(candidate_id)
        self.assertEqual(outcome.status, "skipped")
        self.assertFalse(self.store.get_candidate(candidate_id).interview_email_sent)

    def test_provider_failure_raises_and_allows_retry(self):
        failing = RecordingEmailApi(status_code=422)
        notifier = Notifier(make_client(failing), self.store)
        candidate_id = self._candidate(make_result(90, "Interview"))

        with self.assertRaises(NotificationFailure) as ctx:
            notifier.notify_candidate(candidate_id)
        self.assertEqual(ctx.exception.status_code, 502)
        self.assertFalse(self.store.get_candidate(candidate_id).interview_email_sent)

        failing.status_code = 200
        self.assertEqual(notifier.notify_candidate(candidate_id).status, "sent")

    def test_unknown_candidate_is_reported(self):
        with self.assertRaises(NotificationFailure) as ctx:
            self.notifier.notify_candidate("does-not-exist")
        self.assertEqual(ctx.exception.status_code, 404)

    def test_duplicate_dispatch_without_candidate_id_is_blocked(self):
        result = make_result(15, "Reject")
        first = self.notifier.notify(name="Ann", email="ann@acme.io", result=result)
        second = self.notifier.notify(name="Ann", email="ann@acme.io", result=result)

        self.assertEqual(first.status, "sent")
        self.assertEqual(first.email_type, "rejection")
        self.assertEqual(second.status, "already_sent")
        self.assertEqual(len(self.api.requests), 1)

    def test_candidate_id_uses_stored_result_not_supplied_one(self):
        candidate_id = self._candidate(make_result(20, "Reject"))
        self.notifier.notify_candidate(candidate_id)

        outcome = self.notifier.notify(
            name="Someone Else",
            email="other@acme.io",
            result=make_result(95, "Interview"),
            candidate_id=candidate_id,
        )
        self.assertEqual(outcome.status, "already_sent")
        self.assertEqual(outcome.email_type, "rejection")
        self.assertEqual(len(self.api.requests), 1)
        self.assertFalse(self.store.get_candidate(candidate_id).interview_email_sent)

    def test_only_one_email_kind_per_candidate(self):
        candidate_id = self._candidate(make_result(88, "Interview"))
        self.store.mark_email_sent(candidate_id, "rejection")

        outcome = self.notifier.notify_candidate(candidate_id)
        self.assertEqual(outcome.status, "already_sent")
        self.assertEqual(outcome.email_type, "rejection")
        self.assertEqual(self.api.requests, [])

    def test_candidate_claims_are_released_after_send(self):
        candidate_id = self._candidate(make_result(90, "Interview"))
        self.notifier.notify_candidate(candidate_id)
        self.assertEqual(len(self.notifier._guard), 0)


class SentGuardTests(unittest.TestCase):
    def test_oldest_claims_are_evicted_past_the_bound(self):
        guard = SentGuard(max_entries=2)
        self.assertTrue(guard.claim(("a", "rejection")))
        self.assertTrue(guard.claim(("b", "rejection")))
        self.assertTrue(guard.claim(("c", "rejection")))

        self.assertEqual(len(guard), 2)
        self.assertTrue(guard.claim(("a", "rejection")))
        self.assertFalse(guard.claim(("c", "rejection")))

    def test_release_allows_a_new_claim(self):
        guard = SentGuard()
        guard.claim(("a", "interview"))
        guard.release(("a", "interview"))
        self.assertTrue(guard.claim(("a", "interview")))


if __name__ == "__main__":
    unittest.main()
