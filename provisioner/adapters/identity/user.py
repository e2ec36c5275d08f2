"""
Identity adapter — creates the runtime account.

The account never gets a password and never gets a home directory.
An existing account of the same name satisfies the stage only when it
is not uid 0 and allows neither a home directory on disk nor a password
login. The observed state is recorded on the receipt for the build artifact.
"""

from __future__ import annotations

import logging
import os
import pwd
import shutil
from pathlib import Path

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.shell.command import run_command
from provisioner.core.models.action import Receipt

logger = logging.getLogger(__name__)

SHADOW_FILE = "/etc/shadow"


def build_adduser_command(name: str, uid: int | None, flavor: str) -> list[str]:
    """``adduser`` argv for busybox (apk) or Debian (apt) adduser."""
    cmd = ["adduser", "--disabled-password", "--no-create-home"]
    if flavor == "apt":
        cmd += ["--gecos", ""]
        if uid is not None:
            cmd += ["--uid", str(uid)]
    elif uid is not None:
        cmd += ["-u", str(uid)]
    return cmd + [name]


class IdentityAdapter(Adapter):
    """Action params:
        name (str): Account name.
        uid (int | None): Optional fixed uid.
        flavor (str): 'apk' or 'apt' (which adduser dialect).
    """

    @property
    def name(self) -> str:
        return "identity"

    def is_available(self) -> bool:
        return shutil.which("adduser") is not None

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        name = context.params.get("name", "")
        if not name:
            return False, "Missing required param: 'name'"
        if name == "root" or context.params.get("uid") == 0:
            return False, "Refusing to create a root identity"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        name = context.params["name"]
        uid = context.params.get("uid")

        existing = _lookup(name)
        if existing is not None:
            if existing.pw_uid == 0:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Account '{name}' exists with uid 0",
                )
            return _checked(
                Receipt.skip(
                    adapter=self.name,
                    action_id=context.action.id,
                    reason=f"Account '{name}' already exists (uid {existing.pw_uid})",
                ),
                existing,
            )

        argv = build_adduser_command(name, uid, context.params.get("flavor", "apk"))
        receipt = run_command(self.name, context, argv)
        if not receipt.ok:
            return receipt
        created = _lookup(name)
        if created is None:
            return Receipt.failure(
                adapter=self.name,
                action_id=context.action.id,
                error=f"adduser succeeded but account '{name}' is not in the passwd database",
            )
        return _checked(receipt, created)


def account_state(entry: pwd.struct_passwd) -> dict:
    """What an account allows: a home on disk and a usable password.

    ``login_disabled`` is None when the password field cannot be read.
    """
    password = entry.pw_passwd
    if password == "x":
        password = _shadow_password(entry.pw_name)
    return {
        "uid": entry.pw_uid,
        "home": entry.pw_dir,
        "home_created": bool(entry.pw_dir) and os.path.isdir(entry.pw_dir),
        "login_disabled": None if password is None else _locked(password),
    }


def _checked(receipt: Receipt, entry: pwd.struct_passwd) -> Receipt:
    """Record the account state on ``receipt``; fail it if the account allows too much."""
    state = account_state(entry)
    receipt.metadata.update(state)

    problems = []
    if state["home_created"]:
        problems.append(f"has a home directory ({state['home']})")
    if state["login_disabled"] is None:
        problems.append("password state cannot be read")
    elif not state["login_disabled"]:
        problems.append("has a usable password")
    if not problems:
        return receipt

    return Receipt.failure(
        adapter=receipt.adapter,
        action_id=receipt.action_id,
        error=f"Account '{entry.pw_name}' " + " and ".join(problems),
        metadata=receipt.metadata,
    )


def _locked(password: str) -> bool:
    # "!" / "*" prefixes lock the password; an empty field means no password at all
    return password.startswith(("!", "*"))


def _shadow_password(name: str) -> str | None:
    try:
        text = Path(SHADOW_FILE).read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Cannot read %s: %s", SHADOW_FILE, e)
        return None
    for line in text.splitlines():
        fields = line.split(":")
        if len(fields) > 1 and fields[0] == name:
            return fields[1]
    return None


def _lookup(name: str) -> pwd.struct_passwd | None:
    try:
        return pwd.getpwnam(name)
    except KeyError:
        return None
