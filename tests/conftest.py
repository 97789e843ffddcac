import os

# Keep the module-level engine off disk and the notifier local.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("EVENT_NOTIFIER", "log")
os.environ.setdefault("AUTO_CREATE_DB", "false")

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from linxio_automation.models import Base
from linxio_automation.models.automation_rule import AutomationRule
from linxio_automation.models.project import Label, Project, TaskStatus
from linxio_automation.models.task import Task, TaskAssignee
from linxio_automation.models.user import User


def _make_session_factory():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.events: list[tuple[str, dict]] = []
        self.fail = fail

    def emit(self, kind: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionError("broker unavailable")
        self.events.append((kind, payload))

    def kinds(self) -> list[str]:
        return [kind for kind, _ in self.events]


@pytest.fixture
def session_factory():
    return _make_session_factory()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def seeded(session_factory):
    """Users alice/bob/carol, project "web" with task web-1, empty project "ops"."""
    with session_factory() as db:
        alice = User(id="u-alice", email="alice@example.com", first_name="Alice")
        bob = User(id="u-bob", email="bob@example.com", first_name="Bob")
        carol = User(id="u-carol", email="carol@example.com", first_name="Carol")
        web = Project(id="p-web", name="Web", slug="web", workflow_id="wf-1")
        ops = Project(id="p-ops", name="Ops", slug="ops", workflow_id="wf-1")
        bare = Project(id="p-bare", name="Bare", slug="bare", workflow_id="wf-empty")
        todo = TaskStatus(id="s-todo", workflow_id="wf-1", name="To Do", position=0, is_default=True)
        doing = TaskStatus(id="s-doing", workflow_id="wf-1", name="In Progress", category="IN_PROGRESS", position=1)
        done = TaskStatus(id="s-done", workflow_id="wf-1", name="Done", category="DONE", position=2)
        bug = Label(id="l-bug", project_id="p-web", name="bug", color="#ff0000")
        db.add_all([alice, bob, carol, web, ops, bare, todo, doing, done, bug])
        db.flush()
        task = Task(
            id="t-1",
            project_id="p-web",
            task_number=1,
            slug="web-1",
            title="Checkout page crashes",
            type="BUG",
            priority="HIGH",
            status_id="s-todo",
            created_by="u-alice",
        )
        db.add(task)
        db.flush()
        db.add(TaskAssignee(task_id="t-1", user_id="u-alice"))
        db.commit()
    return SimpleNamespace(
        session_factory=session_factory,
        task_id="t-1",
        project_id="p-web",
        empty_project_id="p-ops",
        bare_project_id="p-bare",
        user_ids=("u-alice", "u-bob", "u-carol"),
    )


@pytest.fixture
def make_rule(session_factory):
    def _make_rule(**overrides) -> str:
        fields = {
            "name": "Escalate high priority bugs",
            "status": "ACTIVE",
            "trigger_type": "TASK_CREATED",
            "action_type": "CHANGE_STATUS",
            "action_config": {"statusId": "s-doing"},
            "project_id": "p-web",
            "created_by": "u-alice",
        }
        fields.update(overrides)
        with session_factory() as db:
            rule = AutomationRule(**fields)
            db.add(rule)
            db.commit()
            return rule.id

    return _make_rule


@pytest.fixture
def failing_notifier():
    return RecordingNotifier(fail=True)
