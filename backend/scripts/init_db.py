#!/usr/bin/env python3
"""
Create the database schema and optionally seed a company with its admin user.

Usage:
    python backend/scripts/init_db.py
    python backend/scripts/init_db.py --company "Acme Farms" --email admin@acme.test --password s3cretpass
"""
import argparse
import logging
import sys

from app.core.database import SessionLocal, init_db
from app.core.logging import configure_logging
from app.core.security import get_password_hash
from app.models.company import Company
from app.models.user import User

logger = logging.getLogger("init_db")


def seed_company(company_name: str, email: str, password: str) -> int:
    db = SessionLocal()
    try:
        email = email.strip().lower()
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            logger.info(f"User {email} already exists in company {existing.company_id}")
            return existing.company_id

        company = Company(name=company_name, email=email)
        db.add(company)
        db.flush()
        db.add(User(
            company_id=company.id,
            email=email,
            full_name="Administrator",
            role="admin",
            hashed_password=get_password_hash(password),
        ))
        db.commit()
        logger.info(f"Created company '{company_name}' ({company.id}) with admin {email}")
        return company.id
    finally:
        db.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Initialise the FleetDesk database")
    parser.add_argument("--company", help="Name of a company to create")
    parser.add_argument("--email", help="Admin email for the new company")
    parser.add_argument("--password", help="Admin password for the new company")
    args = parser.parse_args()

    configure_logging()
    init_db()

    if args.company:
        if not args.email or not args.password:
            parser.error("--company requires --email and --password")
        if len(args.password) < 8:
            parser.error("--password must be at least 8 characters")
        seed_company(args.company, args.email, args.password)
    return 0


if __name__ == "__main__":
    sys.exit(main())
