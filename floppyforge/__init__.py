"""Floppyforge: stage files, directory trees and inline content onto a
FAT12 floppy image for seeding virtual machines during provisioning.

  - File patterns are flattened, directory patterns keep their hierarchy
  - Inline content never touches the filesystem on the source side
  - Deduplicated staging with an explicit collision policy
  - Every temporary path is owned by a tracker and released on teardown
"""

__version__ = "0.1.0"
__description__ = "Removable-media staging step for VM provisioning pipelines"

from floppyforge.core.runner import StepRunner
from floppyforge.models.config import FloppyConfig
from floppyforge.steps.create_floppy import CreateFloppyStep

__all__ = ["CreateFloppyStep", "FloppyConfig", "StepRunner", "__version__"]
