"""Human-readable workflow summaries.

Every summary has one of three shapes, chosen only by ``success`` and the
error keys:

* full success: ``"<title> passed | detail | detail"``
* success with recorded errors: ``"<title> passed with 2 recorded error(s): a, b | detail"``
* failure: ``"<title> failed (2 error(s): a, b)"``
"""

from __future__ import annotations

from typing import Any, Mapping, Sequence


def render_summary(
    title: str,
    success: bool,
    errors: Mapping[str, str],
    details: Sequence[str] = (),
) -> str:
    keys = ", ".join(sorted(errors))
    if not success:
        return f"{title} failed ({len(errors)} error(s): {keys})" if errors else f"{title} failed"

    head = f"{title} passed"
    if errors:
        head = f"{head} with {len(errors)} recorded error(s): {keys}"
    return " | ".join([head, *details])


def _review_detail(review: Mapping[str, Any] | None) -> str | None:
    if not review or review.get("pull_request") is None:
        return None
    confidence = round(float(review.get("overall_confidence", 0.0)) * 100)
    if review.get("unresolved"):
        return f"{review['unresolved']} review item(s) unresolved ({confidence}% confidence)"
    if review.get("partially_resolved"):
        return f"Review partially addressed ({confidence}% confidence)"
    return f"Review comments addressed ({confidence}% confidence)"


def developer_setup_details(results: Mapping[str, Any]) -> list[str]:
    details: list[str] = []
    git_status = results.get("git_status")
    if git_status is not None:
        details.append("Git up to date" if git_status.get("up_to_date") else "Git needs attention")
    environments = results.get("environments")
    if environments is not None:
        details.append("Environment issues detected" if environments.get("non_main") else "Environments clean")
    if results.get("ticket_status") is not None:
        details.append("Ticket checked")
    review = _review_detail(results.get("review_status"))
    if review:
        details.append(review)
    if results.get("watching") is not None:
        details.append("File watching active")
    return details


def pre_commit_details(results: Mapping[str, Any]) -> list[str]:
    details: list[str] = []
    git_status = results.get("git_status")
    if git_status is not None and git_status.get("up_to_date"):
        details.append("Git ready")
    tests = results.get("tests")
    if tests is not None:
        details.append(f"{len(tests.get('results', []))} suite(s) passed")
    if results.get("ticket_status") is not None:
        details.append("Ticket validated")
    if results.get("environments") is not None:
        details.append("Environments checked")
    review = _review_detail(results.get("review_status"))
    if review:
        details.append(review)
    if results.get("commit_message"):
        details.append("Commit message ready")
    return details


def health_check_details(results: Mapping[str, Any], errors: Mapping[str, str]) -> list[str]:
    return [f"{len(results)}/{len(results) + len(errors)} checks successful"]


def suite_details(results: Mapping[str, Any]) -> list[str]:
    details: list[str] = []
    tests = results.get("tests")
    if tests is not None:
        details.append(f"{len(tests.get('results', []))} suite(s) run")
    coverage = results.get("coverage")
    if coverage is not None:
        details.append(f"{coverage['coverage']['lines']:.1f}% line coverage")
    if results.get("complexity") is not None:
        details.append("Complexity analyzed")
    if results.get("e2e") is not None:
        details.append("E2E suite complete")
    return details


__all__ = [
    "developer_setup_details",
    "health_check_details",
    "pre_commit_details",
    "render_summary",
    "suite_details",
]
