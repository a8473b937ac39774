import json

import pytest
from botocore.exceptions import ClientError, WaiterError

import shopping_bot.handler as h
import shopping_bot.store as store


class FakeWaiter:
    def __init__(self, db, name: str):
        self.db = db
        self.name = name

    def wait(self, TableName: str, WaiterConfig: dict):
        self.db.calls.append(("wait", self.name, TableName))
        self.db.waiter_configs.append(WaiterConfig)
        if self.name == "table_not_exists" and TableName in self.db.tables:
            if self.db.finish_delete_after_wait:
                del self.db.tables[TableName]
            raise WaiterError(
                name="TableNotExists",
                reason="Max attempts exceeded",
                last_response={"Table": {"TableName": TableName}},
            )


class FakeDynamo:
    """In-memory stand-in for the boto3 DynamoDB client."""

    def __init__(self):
        self.tables: dict[str, dict] = {}
        self.calls: list[tuple] = []
        self.waiter_configs: list[dict] = []
        self.failures: dict[str, Exception] = {}
        # delete_table only marks the table DELETING; it is never removed
        self.slow_delete = False
        # the DELETING table goes away right after the waiter gives up
        self.finish_delete_after_wait = False

    def add_table(self, name: str, billing: str = "PROVISIONED", rcu: int = 1, wcu: int = 1):
        self.tables[name] = {
            "desc": {
                "TableName": name,
                "AttributeDefinitions": [{"AttributeName": "item", "AttributeType": "S"}],
                "KeySchema": [{"AttributeName": "item", "KeyType": "HASH"}],
                "TableStatus": "ACTIVE",
                "BillingMode": billing,
                "ProvisionedThroughput": {
                    "ReadCapacityUnits": rcu if billing == "PROVISIONED" else 0,
                    "WriteCapacityUnits": wcu if billing == "PROVISIONED" else 0,
                },
            },
            "rows": {},
        }

    def _call(self, op: str, table: str):
        self.calls.append((op, table))
        if op in self.failures:
            raise self.failures[op]
        if op != "create_table" and table not in self.tables:
            raise ClientError(
                {"Error": {"Code": "ResourceNotFoundException", "Message": "not found"}},
                op,
            )
        return self.tables.get(table)

    # ----- client API -----
    def scan(self, TableName: str):
        t = self._call("scan", TableName)
        return {"Items": [dict(r) for r in t["rows"].values()], "Count": len(t["rows"])}

    def put_item(self, TableName: str, Item: dict):
        t = self._call("put_item", TableName)
        t["rows"][Item["item"]["S"]] = Item
        return {}

    def delete_item(self, TableName: str, Key: dict):
        t = self._call("delete_item", TableName)
        t["rows"].pop(Key["item"]["S"], None)
        return {}

    def describe_table(self, TableName: str):
        t = self._call("describe_table", TableName)
        desc = {k: v for k, v in t["desc"].items() if k != "BillingMode"}
        if t["desc"]["BillingMode"] == "PAY_PER_REQUEST":
            desc["BillingModeSummary"] = {"BillingMode": "PAY_PER_REQUEST"}
        desc["ItemCount"] = len(t["rows"])
        return {"Table": desc}

    def delete_table(self, TableName: str):
        t = self._call("delete_table", TableName)
        if self.slow_delete:
            t["desc"]["TableStatus"] = "DELETING"
        else:
            del self.tables[TableName]
        return {}

    def get_waiter(self, name: str):
        return FakeWaiter(self, name)

    def create_table(self, **kw):
        self._call("create_table", kw["TableName"])
        self.created_with = kw
        billing = kw.get("BillingMode", "PROVISIONED")
        throughput = kw.get("ProvisionedThroughput") or {}
        self.add_table(
            kw["TableName"],
            billing=billing,
            rcu=throughput.get("ReadCapacityUnits", 0),
            wcu=throughput.get("WriteCapacityUnits", 0),
        )
        self.tables[kw["TableName"]]["desc"]["AttributeDefinitions"] = kw["AttributeDefinitions"]
        self.tables[kw["TableName"]]["desc"]["KeySchema"] = kw["KeySchema"]
        return {"TableDescription": {"TableName": kw["TableName"], "TableStatus": "CREATING"}}


class FakeLine:
    def __init__(self):
        self.replies: list[tuple[str, str]] = []
        self.pushes: list[tuple[str, str]] = []
        self.fail = False

    def reply_message(self, reply_token: str, text: str):
        if self.fail:
            raise RuntimeError("line down")
        self.replies.append((reply_token, text))
        return {}

    def push_message(self, to: str, text: str):
        if self.fail:
            raise RuntimeError("line down")
        self.pushes.append((to, text))
        return {}


@pytest.fixture
def dynamo(monkeypatch):
    db = FakeDynamo()
    db.add_table("shopping-list")

    class BotoModule:
        def client(self, name: str):
            if name == "dynamodb":
                return db
            raise ValueError(name)

    monkeypatch.setitem(store.__dict__, "boto3", BotoModule())
    return db


@pytest.fixture
def line(monkeypatch):
    fl = FakeLine()
    monkeypatch.setitem(h.__dict__, "LineClient", lambda *_a, **_k: fl)
    return fl


@pytest.fixture(autouse=True)
def _env(monkeypatch):
    monkeypatch.setenv("ACCESS_TOKEN", "token")
    monkeypatch.setenv("NOTIFY_ID", "Cgroup")
    monkeypatch.delenv("CHANNEL_SECRET", raising=False)
    monkeypatch.delenv("TABLE_NAME", raising=False)
    monkeypatch.setenv("TABLE_WAIT_DELAY_SECONDS", "1")
    monkeypatch.setenv("TABLE_WAIT_MAX_ATTEMPTS", "3")


def webhook(*events, headers=None):
    return {
        "headers": headers or {},
        "body": json.dumps({"destination": "Ubot", "events": list(events)}, ensure_ascii=False),
        "isBase64Encoded": False,
    }


def text_event(text: str, user_id: str = "U1", reply_token: str = "rt-1"):
    return {
        "type": "message",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": user_id},
        "message": {"type": "text", "id": "1", "text": text},
    }
