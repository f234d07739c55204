"""
RiskGate — Adaptive Decision Gating for Autonomous Agent Actions.

Architecture:
    DecisionObject → Preemptive Detection → Risk Scoring → Classification
        → Enforcement Directives
        → Human Override (flag-for-review)
        → Historical Feedback + Threshold Optimization (recalibration loop)

Every proposed agent action is scored across nine risk dimensions with
weights recalibrated online, classified against an adaptive threshold band,
and fed back into the engines once humans or realized outcomes disagree.
"""

__version__ = "1.0.0"
