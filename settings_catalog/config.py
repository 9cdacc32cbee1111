"""
Configuration for the settings catalog build (paths, sentinels, tuning).
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, List, Optional, Tuple

# Paths
PROJECT_ROOT = Path(__file__).resolve().parents[1]
DATA_DIR = Path(os.getenv("SETTINGS_CATALOG_DATA_DIR", str(PROJECT_ROOT / "data")))
PUBLIC_DIR = Path(os.getenv("SETTINGS_CATALOG_PUBLIC_DIR", str(PROJECT_ROOT / "public")))
LOG_DIR = PROJECT_ROOT / "logs"

# Snapshot / artifact file names (relative to DATA_DIR or PUBLIC_DIR)
SETTINGS_FILE = "settings.json"
CATEGORIES_FILE = "categories.json"
SETTINGS_PREVIOUS_FILE = "settings-previous.json"
CATEGORIES_PREVIOUS_FILE = "categories-previous.json"
CHANGELOG_FILE = "changelog.json"
CATEGORY_TREE_FILE = "category-tree.json"
MERGE_MAP_FILE = "category-merge-map.json"
SEARCH_INDEX_FILE = "search-index.json"

# Sentinels
UNKNOWN_CATEGORY = "Unknown Category"
ROOT_CATEGORY_ID = "00000000-0000-0000-0000-000000000000"

# Upstream wraps some collections in a synthetic container with this name;
# its children are the real settings.
STRUCTURAL_CONTAINER_NAME = "Top Level Setting Group Collection"

# Marks a repeatable collection member inside an offsetUri.
REPETITION_MARKER = "[{0}]"

# Search index
SEARCH_DESCRIPTION_MAX_CHARS = 300
DEFAULT_SEARCH_LIMIT = 50

FIELD_PRIORITY: Dict[str, int] = {
    "displayName": 4,
    "keywords": 3,
    "description": 2,
    "categoryName": 1,
}
INDEXED_FIELDS: List[str] = list(FIELD_PRIORITY)

# Name affinity tiers: exact, prefix, standalone word, substring
PHRASE_AFFINITY = (100, 80, 60, 40)
WORD_AFFINITY = (30, 25, 20, 15)

# Platforms
PLATFORM_LABELS: Dict[str, str] = {
    "windows10": "Windows",
    "macOS": "macOS",
    "iOS": "iOS/iPadOS",
    "android": "Android",
    "androidEnterprise": "Android Enterprise",
    "aosp": "AOSP",
    "linux": "Linux",
    "visionOS": "visionOS",
    "tvOS": "tvOS",
}

# Filter value -> raw platform strings that satisfy it
PLATFORM_ALIASES: Dict[str, List[str]] = {
    "android": ["android", "androidEnterprise", "aosp"],
    "windows10": ["windows10"],
    "macOS": ["macOS"],
    "iOS": ["iOS"],
    "linux": ["linux"],
}

# Slugs
SLUG_MAX_LENGTH = 200
SLUG_HASH_CHARS = 11

# Defender attack surface reduction rules.  Setting ids carry the rule
# name fragment after this prefix.
ASR_ID_PREFIX = "device_vendor_msft_policy_config_defender_attacksurfacereductionrules_"
ASR_DOCS_URL = "https://learn.microsoft.com/en-us/defender-endpoint/attack-surface-reduction-rules-reference"

# fragment -> (guid, rule name, note)
ASR_RULES: Dict[str, Tuple[str, str, Optional[str]]] = {
    "blockabuseofexploitedvulnerablesigneddrivers": (
        "56a863a9-875e-4185-98a7-b882c64b5ce5",
        "Block abuse of exploited vulnerable signed drivers",
        None,
    ),
    "blockadobereaderfromcreatingchildprocesses": (
        "7674ba52-37eb-4a4f-a9a1-f0f9a1619a2c",
        "Block Adobe Reader from creating child processes",
        None,
    ),
    "blockallofficeapplicationsfromcreatingchildprocesses": (
        "d4f940ab-401b-4efc-aadc-ad5f3c50688a",
        "Block all Office applications from creating child processes",
        None,
    ),
    "blockcredentialstealingfromwindowslocalsecurityauthoritysubsystem": (
        "9e6c4e1f-7d60-472f-ba1a-a39ef669e4b2",
        "Block credential stealing from the Windows local security authority subsystem (lsass.exe)",
        None,
    ),
    "blockexecutablecontentfromemailclientandwebmail": (
        "be9ba2d9-53ea-4cdc-84e5-9b1eeee46550",
        "Block executable content from email client and webmail",
        None,
    ),
    "blockexecutablefilesrunningunlesstheymeetprevalenceagetrustedlistcriterion": (
        "01443614-cd74-433a-b99e-2ecdc07bfc25",
        "Block executable files from running unless they meet a prevalence, age, or trusted list criterion",
        "File and folder exclusions not supported",
    ),
    "blockexecutionofpotentiallyobfuscatedscripts": (
        "5beb7efe-fd9a-4556-801d-275e5ffc04cc",
        "Block execution of potentially obfuscated scripts",
        None,
    ),
    "blockjavascriptorvbscriptfromlaunchingdownloadedexecutablecontent": (
        "d3e037e1-3eb8-44c8-a917-57927947596d",
        "Block JavaScript or VBScript from launching downloaded executable content",
        None,
    ),
    "blockofficeapplicationsfromcreatingexecutablecontent": (
        "3b576869-a4ec-4529-8536-b80a7769e899",
        "Block Office applications from creating executable content",
        None,
    ),
    "blockofficeapplicationsfrominjectingcodeintootherprocesses": (
        "75668c1f-73b5-4cf0-bb93-3ecf5cb7cc84",
        "Block Office applications from injecting code into other processes",
        None,
    ),
    "blockofficecommunicationappfromcreatingchildprocesses": (
        "26190899-1602-49e8-8b27-eb1d0a1ce869",
        "Block Office communication application from creating child processes",
        None,
    ),
    "blockpersistencethroughwmieventsubscription": (
        "e6db77e5-3df2-4cf1-b95a-636979351e5b",
        "Block persistence through WMI event subscription",
        "File and folder exclusions not supported",
    ),
    "blockprocesscreationsfrompsexecandwmicommands": (
        "d1e49aac-8f56-4280-b9ba-993a6d77406c",
        "Block process creations originating from PSExec and WMI commands",
        None,
    ),
    "blockrebootingmachineinsafemode": (
        "33ddedf1-c6e0-47cb-833e-de6133960387",
        "Block rebooting machine in Safe Mode",
        None,
    ),
    "blockuntrustedunsignedprocessesthatrunfromusb": (
        "b2b3f03d-6a65-4f7b-a9c7-1c7ef74a9ba4",
        "Block untrusted and unsigned processes that run from USB",
        None,
    ),
    "blockuseofcopiedorimpersonatedsystemtools": (
        "c0033c00-d16d-4114-a5a0-dc9b3a7d2ceb",
        "Block use of copied or impersonated system tools",
        None,
    ),
    "blockwebshellcreationforservers": (
        "a8f5898e-1dc8-49a9-9878-85004b8a61e6",
        "Block Webshell creation for Servers",
        None,
    ),
    "blockwin32apicallsfromofficemacros": (
        "92e97fa1-2edf-4476-bdd6-9dd0b4dddc7b",
        "Block Win32 API calls from Office macros",
        None,
    ),
    "useadvancedprotectionagainstransomware": (
        "c1db55ab-c21a-4637-bb3f-a12568109d35",
        "Use advanced protection against ransomware",
        None,
    ),
}
