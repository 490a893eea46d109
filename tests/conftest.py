import os
from pathlib import Path

# Keep the developer's own config.yaml out of the test run
os.environ["OBSYNC_CONFIG_PATH"] = str(Path(__file__).parent / "_missing_config.yaml")
