"""Prompt templates and output schema hints for the two capability stages."""

from __future__ import annotations

import json

from volley_coach.pipeline.contracts import AnalyzePayload
from volley_coach.pipeline.models import AnalysisReportView

VISION_OUTPUT_SCHEMA = """\
{
  "overallScore": <number 0-100 or null>,
  "summary": "<3-5 sentence summary of the footage>",
  "playCount": <number of rallies detected or null>,
  "pointsHome": <points for the near/left side or null>,
  "pointsAway": <points for the far/right side or null>,
  "players": [
    {
      "description": "<visual identifier, e.g. 'Player #7 in white jersey'>",
      "jerseyNumber": <number or null>,
      "position": "<detected position or 'unknown'>",
      "reception": "<assessment>",
      "attack": "<assessment>",
      "blocking": "<assessment>",
      "serving": "<assessment>",
      "setting": "<assessment>",
      "defense": "<assessment>",
      "overallRating": <number 0-100 or null>
    }
  ],
  "errors": [
    {
      "title": "<concise error title>",
      "description": "<technical description framed as a coaching opportunity>",
      "severity": "high" | "medium" | "low",
      "category": "serving" | "passing" | "setting" | "attacking" | "blocking" | "digging" | "positioning" | "communication",
      "timeRange": "<start-end, e.g. '0:45-0:52'>",
      "frequency": "<how often it occurs>",
      "playerDescription": "<which player>",
      "videoTimestamp": <seconds into the video>
    }
  ],
  "highlights": [
    {
      "description": "<what happened>",
      "timeRange": "<start-end>",
      "type": "great_play" | "critical_error" | "turning_point"
    }
  ]
}"""

VISION_ANALYSIS_PROMPT = f"""\
You are a volleyball video analyst. Watch the attached match footage and report
on team and player technique.

Rules:
1. Count every serve-to-dead-ball sequence as one rally.
2. Report the technical errors you see (aim for 5-8 when present).
3. Assess every clearly visible player.
4. Severity: high = changes the outcome of rallies, medium = fixable habit,
   low = minor adjustment.
5. When you cannot determine a value, use null instead of guessing.

Return ONLY one JSON object with this shape:
{VISION_OUTPUT_SCHEMA}
"""

PLAN_OUTPUT_SCHEMA = """\
{
  "exercises": [
    {
      "name": "<drill name>",
      "description": "<step-by-step instructions a coach can run>",
      "duration": "<e.g. '10-15 minutes'>",
      "sets": "<e.g. '3 sets of 10 reps'>",
      "targetArea": "serving|passing|setting|attacking|blocking|digging|positioning|communication|general",
      "difficulty": "beginner" | "intermediate" | "advanced",
      "relatedError": "<error title this drill addresses>"
    }
  ],
  "weeklyPlan": {"monday": ["<exercise name>"], "wednesday": ["<exercise name>"]},
  "coachingTips": ["<actionable tip>"],
  "priorityFocus": "<single most impactful area>"
}"""

PLAN_GENERATION_PROMPT = """\
You are a volleyball coach building a training plan from a match analysis.

ANALYSIS:
{analysis}

DETECTED ERRORS:
{errors}

Rules:
1. Produce 5-10 practical drills that target the detected errors.
2. Include a warm-up and vary the difficulty.
3. Keep the weekly plan realistic.

Return ONLY one JSON object with this shape:
{schema}
"""

QUICK_ANALYSIS_SUFFIX = (
    "\n\nThis is a QUICK analysis: report only the 3-5 most impactful observations."
)


def build_vision_prompt(payload: AnalyzePayload) -> str:
    prompt = VISION_ANALYSIS_PROMPT
    if payload.focus_areas:
        prompt += f"\n\nFOCUS AREAS: pay special attention to {', '.join(payload.focus_areas)}."
    if payload.analysis_type == "quick":
        prompt += QUICK_ANALYSIS_SUFFIX
    return prompt


def build_plan_prompt(report: AnalysisReportView) -> str:
    analysis = {
        "overallScore": report.overall_score,
        "summary": report.summary,
        "analysisType": report.analysis_type,
        "focusAreas": list(report.focus_areas),
        "playCount": report.play_count,
        "errorCount": report.error_count,
    }
    errors = [
        {
            "title": error.title,
            "description": error.description,
            "severity": error.severity.value,
            "category": error.category.value if error.category is not None else None,
            "frequency": error.frequency,
        }
        for error in report.errors
    ]
    return PLAN_GENERATION_PROMPT.format(
        analysis=json.dumps(analysis, ensure_ascii=False),
        errors=json.dumps(errors, ensure_ascii=False),
        schema=PLAN_OUTPUT_SCHEMA,
    )
