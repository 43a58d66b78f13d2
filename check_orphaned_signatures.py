#!/usr/bin/env python3
"""
Script to find signatures that were stored without their contract's signed flag
Usage: python check_orphaned_signatures.py [contract_id]
"""

import sys

from app.database import SessionLocal
from app.domain.contracts.service import ContractService


def check_orphaned_signatures(contract_id=None):
    """Report signature rows on the current version whose signer is not marked as signed"""
    db = SessionLocal()

    try:
        scope = f"contract {contract_id}" if contract_id else "all contracts"
        print(f"🔍 Checking {scope} for orphaned signatures...\n")

        orphans = ContractService(db).find_orphaned_signatures(contract_id)
        if not orphans:
            print("   ✅ No orphaned signatures found")
            return 0

        print(f"   ⚠️ Found {len(orphans)} orphaned signature(s):")
        for signature in orphans:
            print(
                f"   - contract={signature.contract_id} user={signature.user_id} "
                f"v{signature.version} signed_at={signature.signed_at.isoformat()}"
            )
        print("\n   💡 The signer should sign again, or the contract should be re-checked manually")
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(check_orphaned_signatures(sys.argv[1] if len(sys.argv) > 1 else None))
