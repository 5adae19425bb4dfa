import pytest


async def test_write_and_remove_inside_user_directory(storage):
    target = await storage.write("/u1/12-standard.png", b"png")

    assert target == storage.root / "u1" / "12-standard.png"
    assert storage.exists("/u1/12-standard.png")
    assert await storage.remove("/u1/12-standard.png") is True
    assert await storage.remove("/u1/12-standard.png") is False


@pytest.mark.parametrize(
    "path",
    [
        "/u1/../u2/12-standard.png",
        "/u1/7/../../u2/12-standard.png",
        "/../outside.png",
        "/u1/../../outside.png",
        "/12-standard.png",
    ],
)
async def test_paths_leaving_the_user_directory_are_refused(storage, path):
    with pytest.raises(ValueError):
        await storage.write(path, b"png")
    assert not (storage.root / "u2").exists()
    assert not (storage.root.parent / "outside.png").exists()
