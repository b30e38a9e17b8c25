"""
schedule_config.py — Clinic Day Constants & Block Configuration

All times are minutes after midnight (8:30 AM = 510, 12:30 PM = 750).

DAY BLOCKS
──────────
  EARLY         7:00 – 8:30    follows the AM assignment
  AM            8:30 – 11:30   AM assignment; split by an 11:00 lunch
  FIRST_LUNCH  11:30 – 12:00   lunch at 11:30 or lunch coverage
  SECOND_LUNCH 12:00 – 12:30   lunch at 12:00 or lunch coverage
  PM           12:30 – 4:00    PM assignment; split by a 12:30 lunch
  LATE          4:00 – 5:30    follows the PM assignment

LUNCH SLOTS
───────────
  11:00  early   (never for staff with an AM client)
  11:30  first half of the coverage window
  12:00  second half of the coverage window
  12:30  late    (mandatory when the PM client starts at 1:00 or later)

CANCELLATION POLICY
───────────────────
  Locations younger than 30 days protect their client.
  New-hire trainees are protected for their first 30 days.
  2-day/week clients skip one cancellation per cycle.
  Clients back from 5+ absent days skip until 3 attendance days.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


# ---------------------------------------------------------------------------
# Clock constants (minutes after midnight)
# ---------------------------------------------------------------------------
AM_BLOCK_START = 450          # 7:30
AM_BLOCK_END = 690            # 11:30
PM_BLOCK_START = 750          # 12:30
ONE_PM = 780
DEFAULT_PM_SESSION_END = 960  # 4:00

LUNCH_WINDOW_START = 660      # 11:00
LUNCH_WINDOW_END = 750        # 12:30
LUNCH_SLOT_DURATION = 30

# Template segments without explicit minutes
DEFAULT_AM_SEGMENT = (AM_BLOCK_START, AM_BLOCK_END)
DEFAULT_PM_SEGMENT = (PM_BLOCK_START, DEFAULT_PM_SESSION_END)

# Split-location clients with no PM start on file
DEFAULT_SPLIT_PM_START = 750
SPLIT_PRESENT_AT_NOON_LATEST = 720


class LunchTime(Enum):
    """Canonical lunch slots; the value is the display label."""
    AT_1100 = "11:00"
    AT_1130 = "11:30"
    AT_1200 = "12:00"
    AT_1230 = "12:30"

    @property
    def start_minute(self) -> int:
        return LUNCH_SLOT_STARTS[self]

    @property
    def end_minute(self) -> int:
        return LUNCH_SLOT_STARTS[self] + LUNCH_SLOT_DURATION


LUNCH_SLOT_STARTS: Dict[LunchTime, int] = {
    LunchTime.AT_1100: 660,
    LunchTime.AT_1130: 690,
    LunchTime.AT_1200: 720,
    LunchTime.AT_1230: 750,
}

# The two coverage halves: staff eating at one covers the other
FIRST_HALF = LunchTime.AT_1130
SECOND_HALF = LunchTime.AT_1200


class LunchHalf(Enum):
    """Which half of the coverage window a pairing rule applies to."""
    FIRST = "first"
    SECOND = "second"


# 11:00/11:30 pair under the first-half rules, 12:00/12:30 under the second
LUNCH_HALF_BY_TIME: Dict[LunchTime, LunchHalf] = {
    LunchTime.AT_1100: LunchHalf.FIRST,
    LunchTime.AT_1130: LunchHalf.FIRST,
    LunchTime.AT_1200: LunchHalf.SECOND,
    LunchTime.AT_1230: LunchHalf.SECOND,
}


# ---------------------------------------------------------------------------
# Template blocks and day blocks
# ---------------------------------------------------------------------------

class Block(Enum):
    AM = "AM"
    PM = "PM"
    ALL_DAY = "ALL_DAY"


class DayBlock(Enum):
    EARLY = "early"
    AM = "am"
    FIRST_LUNCH = "first_lunch"
    SECOND_LUNCH = "second_lunch"
    PM = "pm"
    LATE = "late"


class BlockRule(Enum):
    """Which rule set renders a day block."""
    EDGE = "edge"            # flat copy of the AM/PM assignment
    SESSION = "session"      # assignment with early/late lunch split
    LUNCH_HALF = "lunch"     # lunch or lunch coverage


@dataclass(frozen=True)
class DayBlockSpec:
    block: DayBlock
    start_minute: int
    end_minute: int
    template_block: Block
    rule: BlockRule
    split_lunch: Tuple[LunchTime, ...] = ()
    lunch_time: Optional[LunchTime] = None


DAY_BLOCKS: Tuple[DayBlockSpec, ...] = (
    DayBlockSpec(DayBlock.EARLY, 420, 510, Block.AM, BlockRule.EDGE),
    DayBlockSpec(DayBlock.AM, 510, 690, Block.AM, BlockRule.SESSION,
                 split_lunch=(LunchTime.AT_1100,)),
    DayBlockSpec(DayBlock.FIRST_LUNCH, 690, 720, Block.AM, BlockRule.LUNCH_HALF,
                 lunch_time=LunchTime.AT_1130),
    DayBlockSpec(DayBlock.SECOND_LUNCH, 720, 750, Block.PM, BlockRule.LUNCH_HALF,
                 lunch_time=LunchTime.AT_1200),
    DayBlockSpec(DayBlock.PM, 750, 960, Block.PM, BlockRule.SESSION,
                 split_lunch=(LunchTime.AT_1230,)),
    DayBlockSpec(DayBlock.LATE, 960, 1050, Block.PM, BlockRule.EDGE),
)


# ---------------------------------------------------------------------------
# Source tags shown on every slot
# ---------------------------------------------------------------------------

class SourceTag(Enum):
    TEMPLATE = "TEMPLATE"
    UNFILLED = "UNFILLED"
    CANCEL = "CANCEL"
    OFF_SCHEDULE = "OFF_SCHEDULE"
    REPAIR = "REPAIR"


UNFILLED = "UNFILLED"
UNKNOWN_NAME = "Unknown"
DEFAULT_LOCATION = "clinic"


# ---------------------------------------------------------------------------
# Weekdays (Python date.weekday(): Monday = 0)
# ---------------------------------------------------------------------------
WEEKDAY_KEYS: Tuple[str, ...] = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
WEEKEND_FALLBACK_DAY = 0


# ---------------------------------------------------------------------------
# Policy thresholds
# ---------------------------------------------------------------------------
LEAD_RESERVE_THRESHOLD = 4
LOCATION_PROTECTION_DAYS = 30
NEW_HIRE_PROTECTION_DAYS = 30
SKIP_MAX_DAYS_PER_WEEK = 2
SKIP_CONSECUTIVE_ABSENT_DAYS = 5
SKIP_RETURN_DAYS_NEEDED = 3
BCBA_PREP_MIN_LEAD_LEVEL = 3
