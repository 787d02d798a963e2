from instancemc.auth import AccountStore, Account


def test_offline_account():

    account = Account.offline("Watson17")
    assert account.username == "Watson17"
    assert account.access_token == ""
    assert len(account.uuid) == 32
    assert account == Account.offline("Watson17")
    assert account.uuid != Account.offline("Sherlock").uuid


def test_account_store(tmp_path):

    file = tmp_path / "accounts.json"

    store = AccountStore.load(file)
    assert store.get_account("Watson17") is None

    account = Account("Watson17", "e1d9d0eb0d6d4d2e8f4e3e5d2b1c0a99", "token")
    store.put(account)
    store.save()

    store = AccountStore.load(file)
    assert store.get_account("Watson17") == account
    assert store.get_account("watson17") == account

    assert store.remove("WATSON17") == account
    assert store.remove("Watson17") is None
    store.save()

    assert AccountStore.load(file).get_account("Watson17") is None


def test_account_store_malformed(tmp_path):

    file = tmp_path / "accounts.json"

    file.write_text("not json")
    assert AccountStore.load(file).accounts == {}

    file.write_text('{"accounts": {"a": {"username": "a", "uuid": 12, "access_token": ""}, '
        '"b": {"username": "b", "uuid": "0", "access_token": ""}}}')
    store = AccountStore.load(file)
    assert store.get_account("a") is None
    assert store.get_account("b") == Account("b", "0", "")
