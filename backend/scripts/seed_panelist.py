#!/usr/bin/env python3
"""
Panelist Seed Script
Registers a panelist capacity record so admins can attach them to cases.

Usage:
    python -m scripts.seed_panelist <name> <email> [max_cases]

Example:
    python -m scripts.seed_panelist "Grace Mwangi" grace.mwangi@mediation.org 3
"""
import sys
import os
from typing import Optional
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from app.database import SessionLocal, engine, Base
from app.models.db_models import PanelistDB

DEFAULT_MAX_CASES = 5


def create_panelist(db: Session, name: str, email: str, max_cases: int = DEFAULT_MAX_CASES) -> Optional[PanelistDB]:
    """Create a panelist, or reactivate one already registered under this email."""
    existing = db.query(PanelistDB).filter(PanelistDB.email == email).first()

    if existing:
        if existing.is_active:
            print(f"Error: Panelist with email '{email}' already exists.")
            return None
        existing.is_active = True
        existing.max_cases = max_cases
        db.commit()
        print(f"Reactivated panelist '{email}'.")
        return existing

    panelist = PanelistDB(
        id=str(uuid4()),
        name=name,
        email=email,
        is_active=True,
        max_cases=max_cases,
        current_case_load=0,
    )
    db.add(panelist)
    db.commit()

    print("Panelist created successfully!")
    print(f"  ID: {panelist.id}")
    print(f"  Name: {name}")
    print(f"  Max cases: {max_cases}")
    return panelist


def main():
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(1)

    name = sys.argv[1]
    email = sys.argv[2]
    max_cases = int(sys.argv[3]) if len(sys.argv) == 4 else DEFAULT_MAX_CASES

    # Basic validation
    if max_cases < 1:
        print("Error: max_cases must be at least 1.")
        sys.exit(1)

    if "@" not in email:
        print("Error: Invalid email format.")
        sys.exit(1)

    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    try:
        panelist = create_panelist(db, name, email, max_cases)
    except Exception as e:
        print(f"Error creating panelist: {e}")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()
    sys.exit(0 if panelist else 1)


if __name__ == "__main__":
    main()
