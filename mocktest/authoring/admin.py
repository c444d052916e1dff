"""
Test creator operations: publishing, drafts, live toggling, resume approvals.
"""

from typing import Dict, List, Optional

from mocktest.api.client import ApiClient
from mocktest.authoring.builder import TestDraft
from mocktest.logger import setup_logger
from mocktest.models import ResumeRequest, Test

logger = setup_logger(__name__)


class TestAdmin:
    """Backend operations behind the test creator dashboard."""

    __test__ = False  # not a pytest class

    def __init__(self, api: ApiClient) -> None:
        self.api = api

    async def list_tests(self) -> Dict[str, List[Test]]:
        """
        All tests grouped the way the dashboard shows them:
        new (never live, no attempts), live, attempted (offline with a
        completed attempt).
        """
        tests = await self.api.get_all_tests()
        groups: Dict[str, List[Test]] = {"new": [], "live": [], "attempted": []}
        for test in tests:
            attempts = test.attempts or []
            if test.is_live:
                groups["live"].append(test)
            elif not attempts:
                groups["new"].append(test)
            elif any(a.is_completed for a in attempts):
                groups["attempted"].append(test)
        return groups

    async def publish(self, draft: TestDraft) -> Test:
        """Create the test, or update it when the draft edits an existing one."""
        draft.validate()
        data, files = draft.to_form()
        if draft.editing_id:
            test = await self.api.update_test(draft.editing_id, data, files)
            logger.info(f"✅ Test updated: {draft.name}")
        else:
            test = await self.api.create_test(data, files)
            logger.info(f"✅ Test created: {draft.name}")
        return test

    async def save_draft(self, draft: TestDraft) -> Test:
        draft.validate(draft=True)
        data, files = draft.to_form(draft=True)
        if draft.editing_id:
            test = await self.api.update_test(draft.editing_id, data, files)
        else:
            test = await self.api.create_test(data, files)
        logger.info(f"💾 Draft saved: {draft.name}")
        return test

    async def toggle_live(self, test: Test) -> None:
        await self.api.toggle_test_live(test.id, not test.is_live)
        logger.info(f"🔁 Test {test.id} live={not test.is_live}")

    async def delete(self, test_id: str) -> None:
        await self.api.delete_test(test_id)
        logger.info(f"🗑️ Test {test_id} deleted")

    async def resume_requests(self, test_id: Optional[str] = None) -> List[ResumeRequest]:
        requests = await self.api.get_resume_requests()
        if test_id is None:
            return requests
        return [r for r in requests if r.test is not None and r.test.id == test_id]

    async def allow_resume(self, attempt_id: str) -> None:
        await self.api.allow_resume(attempt_id)
        logger.info(f"✅ Resume permission granted for attempt {attempt_id}")
