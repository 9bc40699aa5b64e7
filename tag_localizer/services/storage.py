from pathlib import Path
import json


class SessionStorage:
    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.name = name
        self.session_dir = None
        self.logs_dir = None

    def begin(self) -> str:
        from time import strftime
        sid = f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        self.session_dir = self.root / sid
        self.logs_dir = self.session_dir / "logs"
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    def write_manifest(self, meta: dict):
        with open(self.session_dir / "config.json", "w") as fp:
            json.dump(meta, fp, indent=2)

    def write_markers(self, markers) -> str:
        """Dump the landmark view as [{"id", "pose"}] for external viewers."""
        p = self.session_dir / "markers.json"
        with open(p, "w") as fp:
            json.dump([{"id": tag_id, "pose": pose.as_dict()} for tag_id, pose in markers], fp, indent=2)
        return str(p)
