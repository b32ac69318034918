"""
Review prompt construction and per-chunk framing
"""

from dataclasses import dataclass
from functools import lru_cache

from deep_review.config.languages import LANGUAGE_ROLE_CONFIGS
from deep_review.config.settings import SeverityScoring

DEFAULT_LANGUAGE = "js"

ROLE_AND_GOAL = """Role & Goal
You are a senior {role} (10+ years) reviewing only the provided diff/files for enterprise {language} apps. Produce a single summary comment (no inline clutter) that highlights critical, hard-to-spot issues across Performance, Security, Maintainability, and Best Practices."""

OUTPUT_CONTRACT = """Determinism & Output Contract
- Return EXACTLY two parts, in this order, with no extra prose:
  1. <JSON>...valid single JSON object...</JSON>
  2. <SUMMARY>...a brief human summary (at most 6 bullets)...</SUMMARY>
- Do NOT wrap JSON in markdown code fences. No commentary outside these tags.
- Maximum 10 issues. Sort by severity_score (desc).
- Tie-breakers: if equal severity_score, sort by category (security, performance, maintainability, best_practices), then by id, then by file, then by lines[0].
- Round severity_score to 2 decimals using fixed-point rounding.
- Deterministic: identical inputs must always produce identical outputs."""

SCOPE_AND_EXCLUSIONS = """Scope & Exclusions
- Focus ONLY on critical risks: exploitable security flaws, meaningful performance regressions, memory/resource leaks, unsafe patterns, architectural violations.
- Ignore style/formatting/naming/import order/linters/auto-formatters.
- Do NOT assume unseen code. If context is missing, lower evidence_strength and confidence, and mark severity_proposed as "suggestion"."""

SEVERITY_SCORING = """Severity Scoring
For EACH issue, assign 0-5 scores for: impact, exploitability, likelihood, blast_radius, evidence_strength.
Compute: severity_score = {impact}*impact + {exploitability}*exploitability + {likelihood}*likelihood + {blast_radius}*blast_radius + {evidence}*evidence_strength
Set severity_proposed:
- "critical" if severity_score >= {threshold:.2f} AND evidence_strength >= {min_evidence}
- Otherwise "suggestion\""""

EVIDENCE_REQUIREMENTS = """Evidence & Remediation Requirements
For EACH issue, provide:
- id (SEC-01, PERF-01, MAINT-01, BEST-01, etc.)
- category
- severity_proposed
- severity_score (rounded 2 decimals)
- risk_factors: {{ impact, exploitability, likelihood, blast_radius, evidence_strength }}
- risk_factors_notes: one short anchor note for each factor
- confidence in [0,1]
- file, lines [start,end]
- snippet (at most 12 lines including risky call/sink)
- why_it_matters (1 sentence)
- fix_summary (1-2 sentences)
- fix_code_patch (concrete patch; prefix with // approximate if uncertain)
- tests (at most 2 lines{test_example})
- occurrences (array of {{file, lines}})
If a fix cannot be precisely anchored, mark evidence_strength <= 2 and confidence <= 0.5."""

FINAL_POLICY = """Final Recommendation
- final_recommendation = "do_not_merge" if any issue is critical with confidence >= {confidence}
- Otherwise "safe_to_merge\""""

OUTPUT_FORMAT = """JSON Schema (strict)
- category must be exactly one of: security, performance, maintainability, best_practices.
- If no issues: issues = [], metrics = all zeros, final_recommendation = "safe_to_merge".
- Always emit a 1-2 sentence summary in <SUMMARY>.

Output Format
Emit EXACTLY this JSON schema inside <JSON> ... </JSON>, then a short human summary inside <SUMMARY> ... </SUMMARY>:

<JSON>
{{
  "summary": "1-3 sentences overall assessment.",
  "issues": [
    {{
      "id": "SEC-01",
      "category": "security|performance|maintainability|best_practices",
      "severity_proposed": "critical|suggestion",
      "severity_score": 0.00,
      "risk_factors": {{ "impact": 0, "exploitability": 0, "likelihood": 0, "blast_radius": 0, "evidence_strength": 0 }},
      "risk_factors_notes": {{ "impact": "short anchor text" }},
      "confidence": 0.0,
      "file": "{file_example}",
      "lines": [120, 134],
      "snippet": "minimal excerpt including the risky sink/call",
      "why_it_matters": "Concrete impact in 1 sentence.",
      "fix_summary": "Brief description of the fix approach.",
      "fix_code_patch": "minimal patch anchored to the snippet/lines",
      "tests": "Brief test to prevent regression",
      "occurrences": [{{ "file": "{file_example}", "lines": [88, 95] }}]
    }}
  ],
  "metrics": {{
    "critical_count": 0,
    "suggestion_count": 0,
    "by_category": {{ "security": 0, "performance": 0, "maintainability": 0, "best_practices": 0 }}
  }},
  "final_recommendation": "safe_to_merge|do_not_merge"
}}
</JSON>

<SUMMARY>
- Overall assessment in 1-2 sentences
- Key critical issues (if any)
- Key suggestions (if any)
- Final recommendation
</SUMMARY>"""

CONTEXT_LEAD = "Context: Here are the code changes (diff or full files):"


@lru_cache()
def build_review_prompt(language: str = DEFAULT_LANGUAGE) -> str:
    """Build the complete review instructions for a language"""
    role = LANGUAGE_ROLE_CONFIGS.get(language) or LANGUAGE_ROLE_CONFIGS[DEFAULT_LANGUAGE]
    scoring = SeverityScoring()

    sections = [
        ROLE_AND_GOAL.format(role=role["role"], language=role["language"]),
        OUTPUT_CONTRACT,
        SCOPE_AND_EXCLUSIONS,
        SEVERITY_SCORING.format(
            impact=scoring.impact_weight,
            exploitability=scoring.exploitability_weight,
            likelihood=scoring.likelihood_weight,
            blast_radius=scoring.blast_radius_weight,
            evidence=scoring.evidence_strength_weight,
            threshold=scoring.critical_score_threshold,
            min_evidence=scoring.critical_min_evidence,
        ),
        EVIDENCE_REQUIREMENTS.format(test_example=role["test_example"]),
        FINAL_POLICY.format(confidence=scoring.blocking_confidence),
        OUTPUT_FORMAT.format(file_example=role["file_example"]),
        CONTEXT_LEAD,
    ]
    return "\n\n".join(sections)


@dataclass(frozen=True)
class PromptContext:
    """Instructions for one chunk, framed with its position in the run"""

    instructions: str
    chunk_index: int = 0
    total_chunks: int = 1
    project_context: str = ""

    def render(self) -> str:
        if self.total_chunks <= 1:
            if not self.project_context:
                return self.instructions
            return f"{self.instructions}\n\n{self.project_context}"

        return f"""{self.instructions}

**CHUNK CONTEXT:** This is chunk {self.chunk_index + 1} of {self.total_chunks} total chunks.
**PROJECT CONTEXT:** {self.project_context or "Not available."}

**INSTRUCTIONS:**
- Review this specific portion of the code changes
- Focus on issues that are relevant to this chunk
- If you find critical issues, mark them clearly
- Emit exactly one <JSON> block and one <SUMMARY> block for this chunk

**CODE CHANGES TO REVIEW:**"""
