from persistence.storage import LocalStorage


def test_set_get_and_remove(storage):
    assert storage.get_item("authToken") is None

    storage.set_item("authToken", "abc")
    storage.set_item("authToken", "def")
    assert storage.get_item("authToken") == "def"

    storage.remove_item("authToken")
    assert storage.get_item("authToken") is None
    storage.remove_item("authToken")


def test_values_survive_a_new_instance(tmp_path):
    url = f"sqlite:///{tmp_path / 'durable.db'}"
    LocalStorage(url).set_item("refreshToken", "r-1")

    assert LocalStorage(url).get_item("refreshToken") == "r-1"


def test_clear_and_keys(storage):
    storage.set_item("b", "2")
    storage.set_item("a", "1")
    assert storage.keys() == ["a", "b"]

    storage.clear()
    assert storage.keys() == []


def test_in_memory_storage_keeps_values_between_sessions():
    memory = LocalStorage("sqlite://")
    memory.set_item("preferredCurrency", "INR")
    assert memory.get_item("preferredCurrency") == "INR"
