from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.orm import Session

from backend.db import SessionLocal
from backend.import_export import ImportOptions, ImportResult, RuleImporter
from backend.stores import SQLProfileStore, SQLRuleStore
from eligibility_engine.loader import load_bundled_rules
from eligibility_engine.schema import dump_definition

logger = logging.getLogger(__name__)

DEMO_PROFILE_ID = "demo-profile"

DEMO_PROFILE = {
    "householdIncome": 30000,
    "incomePeriod": "annual",
    "householdSize": 3,
    "dateOfBirth": "1990-06-15",
    "state": "Georgia",
    "county": "Fulton",
    "isCitizen": True,
    "isStudent": False,
    "isPregnant": False,
    "hasChildren": True,
}


def seed_bundled_rules(db: Session, rules_dir: Optional[str] = None) -> ImportResult:
    """Upsert the bundled programs and rules; embedded tests run on the way in."""
    programs, definitions = load_bundled_rules(rules_dir)
    store = SQLRuleStore(db)
    for program in programs:
        store.save_program(program)
    result = RuleImporter(store).import_rules(
        [dump_definition(definition) for definition in definitions],
        ImportOptions(mode="upsert"),
    )
    logger.info("Seeded %d program(s), %d rule(s)", len(programs), result.imported)
    return result


def seed_demo_data() -> None:
    """Seed bundled rules and a demo profile if the profile is missing."""
    with SessionLocal() as db:
        seed_bundled_rules(db)
        profiles = SQLProfileStore(db)
        if profiles.find_profile_by_id(DEMO_PROFILE_ID) is None:
            profiles.save_profile(DEMO_PROFILE, profile_id=DEMO_PROFILE_ID)
