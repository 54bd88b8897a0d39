"""Test harness API router."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Query

from meetmate.tests.harness import TestHarness


def create_testing_router(ctx) -> APIRouter:
    """Create the testing router with configured harness."""
    router = APIRouter(tags=["testing"])
    logger = logging.getLogger("meetmate.api.testing")
    harness = TestHarness(ctx.logs_dir)

    async def _run(suite: Optional[str], all_suites: bool) -> dict:
        if all_suites:
            return await harness.run_all()
        if suite:
            return await harness.run_suite(suite)
        return {
            "status": "error",
            "message": "Specify ?suite=<suite_id> or ?all=true",
            "available_suites": [s["suite_id"] for s in harness.get_available_suites()],
        }

    @router.get("/api/test/suites")
    async def list_suites():
        """List all available test suites."""
        return {
            "status": "ok",
            "suites": harness.get_available_suites(),
        }

    @router.post("/api/test/run")
    async def run_tests(
        suite: Optional[str] = Query(None, description="Suite ID to run"),
        all_suites: bool = Query(False, alias="all", description="Run all suites"),
    ):
        logger.info("Test run requested: suite=%s all=%s", suite, all_suites)
        return await _run(suite, all_suites)

    @router.get("/api/test/run")
    async def run_tests_get(
        suite: Optional[str] = Query(None, description="Suite ID to run"),
        all_suites: bool = Query(False, alias="all", description="Run all suites"),
    ):
        """Run test suite(s) via GET (for browser URL triggering)."""
        logger.info("Test run requested (GET): suite=%s all=%s", suite, all_suites)
        return await _run(suite, all_suites)

    return router
