from models import Phase, PhaseOrderingRules

# =======================
# PHASE ORDERING RULES
# =======================
# Each phase lists the phases that must reach the given completion
# fraction before it may start.
RULES_VERSION = "1.2.0"

PHASE_ORDERING = {
    Phase.SITE_PREP: {},
    Phase.FOUNDATION: {Phase.SITE_PREP: 1.0},
    Phase.FRAMING: {Phase.FOUNDATION: 1.0},
    Phase.ROUGH_IN: {Phase.FRAMING: 1.0},
    Phase.INSPECTION: {Phase.ROUGH_IN: 1.0},
    Phase.FINISHING: {Phase.INSPECTION: 1.0},
    Phase.PUNCH_LIST: {Phase.FINISHING: 1.0},
}

DEFAULT_RULES = PhaseOrderingRules(PHASE_ORDERING, version=RULES_VERSION)

# =======================
# REGULATORY INSPECTIONS
# =======================
# Phases that legally require an inspection once their work is complete,
# mapped to the inspection type booked with the authority.
INSPECTION_REQUIREMENTS = {
    Phase.FOUNDATION: "foundation",
    Phase.FRAMING: "framing",
    Phase.ROUGH_IN: "rough_in",
    Phase.PUNCH_LIST: "final",
}


def inspection_type_for(phase) -> str:
    """Inspection type for a phase; phases outside the table use their own name."""
    phase = Phase(phase)
    return INSPECTION_REQUIREMENTS.get(phase, phase.value)


# =======================
# CONFLICT THRESHOLDS
# =======================
# Overlap at or above this share of the shorter task escalates to high.
TRADE_OVERLAP_HIGH_RATIO = 0.5

# Buffers longer than this many days between dependent tasks can be compressed.
MAX_BUFFER_DAYS = 1

# =======================
# DEMO PROJECT
# =======================
SAMPLE_PROJECT_ID = "demo-house"

SAMPLE_TASKS = [
    {"id": "T1", "name": "Clear and grade lot", "phase": "site_prep", "start_date": "2026-05-01",
     "end_date": "2026-05-05", "status": "completed", "assigned_trade": "excavation"},
    {"id": "T2", "name": "Pour footings", "phase": "foundation", "start_date": "2026-05-06",
     "end_date": "2026-05-12", "status": "in_progress", "assigned_trade": "concrete",
     "inspection_required": True},
    {"id": "T3", "name": "Frame walls", "phase": "framing", "start_date": "2026-05-11",
     "end_date": "2026-05-22", "status": "not_started", "assigned_trade": "carpentry",
     "inspection_required": True},
    {"id": "T4", "name": "Roof trusses", "phase": "framing", "start_date": "2026-05-18",
     "end_date": "2026-05-26", "status": "not_started", "assigned_trade": "carpentry"},
    {"id": "T5", "name": "Rough electrical", "phase": "rough_in", "start_date": "2026-05-29",
     "end_date": "2026-06-03", "status": "not_started", "assigned_trade": "electrical"},
    {"id": "T6", "name": "Rough plumbing", "phase": "rough_in", "start_date": "2026-06-04",
     "end_date": "2026-06-08", "status": "not_started", "assigned_trade": "plumbing"},
    {"id": "T7", "name": "Drywall and paint", "phase": "finishing", "start_date": "2026-06-15",
     "end_date": "2026-06-26", "status": "not_started", "assigned_trade": "drywall"},
    {"id": "T8", "name": "Punch list walkthrough", "phase": "punch_list", "start_date": "2026-06-29",
     "end_date": "2026-07-01", "status": "not_started", "assigned_trade": "general"},
]
