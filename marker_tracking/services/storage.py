from pathlib import Path
import json, cv2

class SessionStorage:
    def __init__(self, root: str, name: str = "session"):
        self.root = Path(root)
        self.session_dir = None
        self.snapshots_dir = None
        self.logs_dir = None
        self.last_path = None
        self.name = name

    def begin(self) -> str:
        from time import strftime
        sid = f"{self.name}_{strftime('%Y%m%d_%H%M%S')}"
        self.session_dir = self.root / sid
        self.snapshots_dir = self.session_dir / "snapshots"
        self.logs_dir = self.session_dir / "logs"
        for d in (self.snapshots_dir, self.logs_dir):
            d.mkdir(parents=True, exist_ok=True)
        return str(self.session_dir)

    @property
    def locations_path(self) -> Path:
        return self.session_dir / "locations.csv"

    @property
    def calibration_path(self) -> Path:
        return self.session_dir / "calibration.yml"

    def save_snapshot(self, frameset):
        """Save every camera image of a frameset, one file per camera."""
        paths = []
        for cam, frame in enumerate(frameset):
            p = self.snapshots_dir / f"f{frameset.idx:06d}_cam{cam}.jpg"
            cv2.imwrite(str(p), frame.image)
            paths.append(str(p))
        self.last_path = paths[0] if paths else None
        return paths

    def write_manifest(self, meta: dict):
        with open(self.session_dir / "config.json", "w") as fp:
            json.dump(meta, fp, indent=2)
