"""Findings generator: ordered rules evaluated against the analyzer's signals."""

from __future__ import annotations

from typing import Any

from app.core.rule_engine import RuleEvaluator, RuleRegistry
from app.engines.ai_visibility.content import PageSample
from app.engines.ai_visibility.probe import ViabilityResult
from app.engines.ai_visibility.robots import RobotsAnalysis
from app.engines.ai_visibility.sitemap import SitemapResult
from app.engines.ai_visibility.subscores import GuidanceCheck, SubScore
from app.engines.base import Finding

MAX_FINDINGS = 8


def build_context(
    robots: RobotsAnalysis,
    viability: ViabilityResult,
    samples: list[PageSample],
    entity: SubScore,
    sitemap: SitemapResult,
    guidance: GuidanceCheck,
) -> dict[str, Any]:
    """Flatten everything the rules look at. Only counts and flags, never page text."""
    facts = entity.details["business_facts"]["found"]
    return {
        "disallow_all": robots.disallow_all,
        "gptbot_blocked": robots.gptbot_blocked,
        "oai_searchbot_blocked": robots.oai_searchbot_blocked,
        "chatgpt_user_blocked": robots.chatgpt_user_blocked,
        "js_shell_pages": sum(1 for s in samples if s.js_shell),
        "valid_json_ld_blocks": entity.details["json_ld"]["valid_blocks"],
        "phone_found": facts["phone"],
        "email_found": facts["email"],
        "sitemap_reachable": sitemap.reachable,
        "sitemap_parseable": sitemap.parseable,
        "llms_txt_score": guidance.score,
        "viability_score": viability.score,
        "viability_successful": viability.successful,
        "viability_total": viability.total,
    }


def generate_findings(
    context: dict[str, Any],
    registry: RuleRegistry,
    limit: int = MAX_FINDINGS,
) -> list[Finding]:
    evaluator = RuleEvaluator()
    findings = []
    for rule in registry.get_all():
        if evaluator.evaluate_rule(rule, context):
            findings.append(evaluator.render(rule, context))
            if len(findings) >= limit:
                break
    return findings
