"""
Seed the built-in command tokens (#IBO, #ASSIST, #LAZER, #FUN, #PLAYSIM) as
global rows so operators can disable or rename them from the admin API.
Idempotent: tokens that already exist globally are skipped.
"""
from salesbot.core.profiles import DEFAULT_COMMANDS
from salesbot.errors import ConflictError
from salesbot.store import config_repo as cr


def main(repo=None):
    repo = repo or cr.ConfigRepository()
    created = 0
    for cmd in DEFAULT_COMMANDS:
        try:
            repo.create(cr.COMMANDS, {"token": cmd.token, "flowName": cmd.flowName, "enabled": True})
            created += 1
        except ConflictError:
            continue
    print(f"OK: seeded {created} command(s) under {repo._key(cr.COMMANDS)}")
    return created


if __name__ == "__main__":
    main()
