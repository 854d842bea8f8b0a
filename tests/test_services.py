import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ProgressRepository, SessionRepository, SettingsRepository, UserRepository
from catalog_service import SessionCatalogService
from progress_service import ProgressTrackingService
from user_service import SettingsService
from errors import ForbiddenError, InvalidInputError, NotFoundError


class StaleSessionRepository(SessionRepository):
    """Reports every entry as present, as if it were deleted right after the check."""

    def exists(self, session_id: int) -> bool:
        return True


SHOOTING_DRILL = {
    "title": "Corner Threes",
    "type": "Shooting",
    "difficulty": "Easy",
    "duration": 20,
    "intensity": 5,
}


@pytest.fixture
def env(tmp_path):
    db_file = str(tmp_path / "hooplog.db")
    users = UserRepository(db_file)
    sessions = SessionRepository(db_file)
    progress = ProgressRepository(db_file)
    settings = SettingsRepository(db_file)
    alice = users.create("alice@example.com", "Alice", "x")
    bob = users.create("bob@example.com", "Bob", "x")
    prebuilt = sessions.add("Form Shooting", "Shooting", "Easy", 30, 4)
    return {
        "sessions": sessions,
        "progress": progress,
        "catalog": SessionCatalogService(sessions, progress),
        "tracking": ProgressTrackingService(progress, sessions),
        "settings": SettingsService(settings),
        "alice": alice,
        "bob": bob,
        "prebuilt": prebuilt,
    }


def test_prebuilt_entries_are_read_only(env):
    for user in (env["alice"], env["bob"]):
        with pytest.raises(ForbiddenError):
            env["catalog"].update(user, env["prebuilt"], {"title": "Mine now"})
        with pytest.raises(ForbiddenError):
            env["catalog"].delete(user, env["prebuilt"])
    assert env["catalog"].get(env["prebuilt"]).title == "Form Shooting"


def test_only_owner_mutates_custom_entry(env):
    entry = env["catalog"].create(env["alice"], SHOOTING_DRILL)
    assert entry.owner.is_user(env["alice"])
    assert not entry.is_prebuilt
    with pytest.raises(ForbiddenError):
        env["catalog"].update(env["bob"], entry.id, {"duration": 45})
    updated = env["catalog"].update(
        env["alice"], entry.id, {"duration": 45, "difficulty": "Hard"}
    )
    assert updated.duration == 45
    assert updated.difficulty == "Hard"
    assert updated.title == "Corner Threes"


def test_update_and_delete_missing_entry(env):
    with pytest.raises(NotFoundError):
        env["catalog"].update(env["alice"], 999, {"title": "x"})
    with pytest.raises(NotFoundError):
        env["catalog"].delete(env["alice"], 999)
    with pytest.raises(NotFoundError):
        env["catalog"].get(999)


def test_create_validates_fields(env):
    bad = dict(SHOOTING_DRILL, duration="twenty")
    with pytest.raises(InvalidInputError):
        env["catalog"].create(env["alice"], bad)
    with pytest.raises(InvalidInputError):
        env["catalog"].create(env["alice"], dict(SHOOTING_DRILL, intensity=11))
    with pytest.raises(InvalidInputError):
        env["catalog"].create(env["alice"], dict(SHOOTING_DRILL, type="Swimming"))
    entry = env["catalog"].create(
        env["alice"], dict(SHOOTING_DRILL, type="Dribbling Skills", duration="25")
    )
    assert entry.type == "DribblingSkills"
    assert entry.duration == 25


def test_subscribe_is_idempotent(env):
    tracking = env["tracking"]
    first = tracking.subscribe(env["bob"], env["prebuilt"])
    assert (first.progress, first.favorite) == (0, False)
    tracking.update_progress(env["bob"], env["prebuilt"], {"progress": 30})
    second = tracking.subscribe(env["bob"], env["prebuilt"])
    assert second.id == first.id
    assert second.progress == 30


def test_subscribe_missing_entry(env):
    with pytest.raises(NotFoundError):
        env["tracking"].subscribe(env["bob"], 999)


def test_subscribe_to_entry_deleted_meanwhile(env, tmp_path):
    stale = StaleSessionRepository(str(tmp_path / "hooplog.db"))
    tracking = ProgressTrackingService(env["progress"], stale)
    with pytest.raises(NotFoundError):
        tracking.subscribe(env["bob"], 999)
    with pytest.raises(NotFoundError):
        tracking.update_progress(env["bob"], 999, {"progress": 10})
    assert env["progress"].fetch(env["bob"], 999) is None


def test_unsubscribe_fails_on_repeat(env):
    tracking = env["tracking"]
    with pytest.raises(NotFoundError):
        tracking.unsubscribe(env["bob"], env["prebuilt"])
    tracking.subscribe(env["bob"], env["prebuilt"])
    tracking.unsubscribe(env["bob"], env["prebuilt"])
    with pytest.raises(NotFoundError):
        tracking.unsubscribe(env["bob"], env["prebuilt"])


def test_update_progress_creates_then_merges(env):
    tracking = env["tracking"]
    record = tracking.update_progress(env["bob"], env["prebuilt"], {"progress": 40})
    assert (record.progress, record.favorite) == (40, False)
    record = tracking.update_progress(env["bob"], env["prebuilt"], {"favorite": True})
    assert (record.progress, record.favorite) == (40, True)


def test_update_progress_rejects_out_of_range(env):
    entry = env["catalog"].create(env["alice"], SHOOTING_DRILL)
    record = env["tracking"].subscribe(env["bob"], entry.id)
    assert (record.progress, record.favorite) == (0, False)
    with pytest.raises(InvalidInputError):
        env["tracking"].update_progress(env["bob"], entry.id, {"progress": 150})
    with pytest.raises(InvalidInputError):
        env["tracking"].update_progress(env["bob"], entry.id, {"progress": -1})
    assert env["progress"].fetch(env["bob"], entry.id).progress == 0


def test_toggle_favorite_flips_or_sets(env):
    tracking = env["tracking"]
    record = tracking.toggle_favorite(env["bob"], env["prebuilt"])
    assert (record.progress, record.favorite) == (0, True)
    record = tracking.toggle_favorite(env["bob"], env["prebuilt"])
    assert record.favorite is False
    record = tracking.toggle_favorite(env["bob"], env["prebuilt"], False)
    assert record.favorite is False
    record = tracking.toggle_favorite(env["bob"], env["prebuilt"], True)
    assert record.favorite is True


def test_toggle_favorite_explicit_false_on_new_record(env):
    record = env["tracking"].toggle_favorite(env["bob"], env["prebuilt"], False)
    assert record.favorite is False


def test_delete_cascades_to_every_user(env):
    entry = env["catalog"].create(env["alice"], SHOOTING_DRILL)
    env["tracking"].subscribe(env["alice"], entry.id)
    env["tracking"].subscribe(env["bob"], entry.id)
    env["catalog"].delete(env["alice"], entry.id)
    with pytest.raises(NotFoundError):
        env["catalog"].get(entry.id)
    assert env["progress"].fetch(env["alice"], entry.id) is None
    assert env["progress"].fetch(env["bob"], entry.id) is None
    assert env["catalog"].list_for_user(env["bob"]) == []


def test_list_for_user_favorite_filter(env):
    sessions = env["sessions"]
    tracking = env["tracking"]
    ids = [
        sessions.add(f"Drill {i}", "Defense", "Medium", 10, 5) for i in range(4)
    ]
    for sid in ids:
        tracking.subscribe(env["bob"], sid)
    tracking.toggle_favorite(env["bob"], ids[0])
    tracking.toggle_favorite(env["bob"], ids[2])
    rows = env["catalog"].list_for_user(env["bob"], favorite=True)
    assert [entry.id for entry, _ in rows] == [ids[2], ids[0]]
    assert all(record.favorite for _, record in rows)
    rows = env["catalog"].list_for_user(env["bob"], favorite=False)
    assert [entry.id for entry, _ in rows] == [ids[3], ids[1]]
    assert env["catalog"].list_for_user(env["alice"]) == []


def test_list_filters(env):
    sessions = env["sessions"]
    sessions.add("Crossover Series", "DribblingSkills", "Hard", 15, 7)
    sessions.add("Closeout_Drill", "Defense", "Medium", 15, 6)
    catalog = env["catalog"]
    assert [e.title for e in catalog.list_prebuilt(title="CROSS")] == [
        "Crossover Series"
    ]
    assert [e.title for e in catalog.list_prebuilt(title="t_d")] == ["Closeout_Drill"]
    assert catalog.list_prebuilt(title="%") == []
    assert [e.title for e in catalog.list_prebuilt(session_type="Dribbling Skills")] == [
        "Crossover Series"
    ]
    assert catalog.list_prebuilt(session_type="Swimming") == []
    assert [e.title for e in catalog.list_prebuilt(difficulty="medium")] == [
        "Closeout_Drill"
    ]
    titles = [e.title for e in catalog.list_prebuilt()]
    assert titles == ["Closeout_Drill", "Crossover Series", "Form Shooting"]


def test_list_prebuilt_excludes_custom(env):
    env["catalog"].create(env["alice"], SHOOTING_DRILL)
    titles = [e.title for e in env["catalog"].list_prebuilt()]
    assert "Corner Threes" not in titles


def test_reset_all_removes_only_own_records(env):
    tracking = env["tracking"]
    assert tracking.reset_all(env["bob"]) == 0
    tracking.subscribe(env["bob"], env["prebuilt"])
    tracking.subscribe(env["alice"], env["prebuilt"])
    assert tracking.reset_all(env["bob"]) == 1
    assert env["catalog"].list_for_user(env["bob"]) == []
    assert len(env["catalog"].list_for_user(env["alice"])) == 1


def test_settings_merge(env):
    service = env["settings"]
    current = service.get(env["alice"])
    assert (current.motivational_quotes, current.vibration_effects) == (False, False)
    updated = service.update(env["alice"], {"motivationalQuotes": True})
    assert (updated.motivational_quotes, updated.vibration_effects) == (True, False)
    updated = service.update(env["alice"], {"vibration_effects": True})
    assert (updated.motivational_quotes, updated.vibration_effects) == (True, True)
    with pytest.raises(NotFoundError):
        service.get(999)
