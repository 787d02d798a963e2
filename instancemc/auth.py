"""Accounts storage, used to find the identity and session token of a player when
building the game's arguments.
"""

from uuid import UUID, uuid5
from pathlib import Path
import json

from typing import Optional, Dict


# Namespace used to derive the UUID of offline accounts from their username.
OFFLINE_NAMESPACE = UUID("8df5a464-38de-11ec-aa66-3fd636ee2ed7")


class Account:
    """An account with its username, UUID and session access token.
    """

    fields = "username", "uuid", "access_token"

    __slots__ = fields

    def __init__(self, username: str, uuid: str, access_token: str) -> None:
        self.username = username
        self.uuid = uuid
        self.access_token = access_token

    @classmethod
    def offline(cls, username: str) -> "Account":
        """Create an anonymous account for the given username, this account has a UUID
        derived from the username and no access token. This is used when no account is
        stored for a username.
        """
        return cls(username[:16], uuid5(OFFLINE_NAMESPACE, username[:16]).hex, "")

    def __eq__(self, other) -> bool:
        return isinstance(other, Account) and \
            (self.username, self.uuid, self.access_token) == \
            (other.username, other.uuid, other.access_token)

    def __repr__(self) -> str:
        return f"<Account {self.username} {self.uuid}>"


class AccountStore:
    """The accounts store, keeping accounts by their username (case insensitive).
    """

    def __init__(self, file: Path):
        self.file = file
        self.accounts: Dict[str, Account] = {}

    @classmethod
    def load(cls, file: Path) -> "AccountStore":
        """Load the store from the given file. A missing or malformed file gives an empty
        store, malformed accounts are skipped.
        """

        store = cls(file)

        try:
            with file.open("rt") as fp:
                data = json.load(fp)
            for key, account_data in data["accounts"].items():
                values = [account_data.get(field) for field in Account.fields]
                if all(isinstance(value, str) for value in values):
                    store.accounts[key.casefold()] = Account(*values)
        except (OSError, KeyError, TypeError, AttributeError, json.JSONDecodeError):
            pass

        return store

    def save(self) -> None:

        self.file.parent.mkdir(parents=True, exist_ok=True)

        data = {}
        for key, account in self.accounts.items():
            data[key] = {field: getattr(account, field) for field in Account.fields}

        with self.file.open("wt") as fp:
            json.dump({"accounts": data}, fp, indent=2)

    def get_account(self, username: str) -> Optional[Account]:
        """Try to get an account from its username.
        """
        return self.accounts.get(username.casefold())

    def put(self, account: Account) -> None:
        """Push the given account to the store, replacing any previous account with the
        same username.
        """
        self.accounts[account.username.casefold()] = account

    def remove(self, username: str) -> Optional[Account]:
        """Remove the account with the given username and return it, if existing.
        """
        return self.accounts.pop(username.casefold(), None)
