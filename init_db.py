import argparse

from app import create_app
from models import db, ComplianceRuleSet
from services.compliance import ruleset_store


def create_tables(app):
    with app.app_context():
        db.create_all()
        print("Created all tables.")


def seed_rules(app, directory=None):
    with app.app_context():
        db.create_all()
        directory = directory or app.config['COMPLIANCE_RULES_DIR']

        print(f"Loading starter rule sets from {directory}...")
        seeded = ruleset_store.seed_from_directory(directory)
        for rule_set in seeded:
            print(f"Added rule set: {rule_set.jurisdiction} v{rule_set.version}")
        if not seeded:
            print("Starter rule sets already exist in database!")

        # Verify what is active now
        all_rule_sets = ComplianceRuleSet.query.filter_by(org_id=None).order_by(
            ComplianceRuleSet.jurisdiction, ComplianceRuleSet.version
        ).all()
        print("\nPlatform-wide rule sets in database:")
        for rule_set in all_rule_sets:
            effective_to = rule_set.effective_to.date() if rule_set.effective_to else 'open'
            print(f"{rule_set.jurisdiction} v{rule_set.version}: "
                  f"{rule_set.effective_from.date()} - {effective_to}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Database setup for deal documents')
    subparsers = parser.add_subparsers(dest='command', required=True)

    subparsers.add_parser('create', help='Create all tables')
    seed_parser = subparsers.add_parser('seed-rules', help='Load starter compliance rule sets')
    seed_parser.add_argument('--dir', dest='directory', help='Directory of *.yml rule sets')

    args = parser.parse_args(argv)
    app = create_app()

    if args.command == 'create':
        create_tables(app)
    elif args.command == 'seed-rules':
        seed_rules(app, args.directory)


if __name__ == '__main__':
    main()
