"""Scoring and group constants"""

# Two scores within this distance agree (pairwise safe topic, group label)
SAFE_TOLERANCE = 25

# Dispersion at or above this marks a strongly divided topic
HOT_THRESHOLD = 100

# Group agreement: share of members within this distance of the median
GROUP_AGREEMENT_BAND = 25

# Compatible subset: members within this distance of the pivot member
COMPATIBILITY_THRESHOLD = 25

# Option scores are integers in this closed range
MIN_OPTION_SCORE = -100
MAX_OPTION_SCORE = 100

DEFAULT_GROUP_NICKNAME = "My Group"
DEFAULT_SURVEY_VERSION = "v1"
DEFAULT_OWNER_ALIAS = "Owner"

# Member aliases default to "Member #N" with N below this
MEMBER_ALIAS_RANGE = 1000
