"""Command-line entry point.

Runs as a cluster initialization action and takes no arguments: cluster
choices come from instance metadata and runtime settings from
``GPU_PROVISIONER_*`` environment variables.

Exit status is 0 on success or when the node is rebooting into a new
kernel, and 1 on any provisioning error.
"""

from __future__ import annotations

import sys
from typing import Optional

from gpu_provisioner.domain.exceptions import ProvisioningError, RebootScheduled
from gpu_provisioner.infrastructure.config import Config
from gpu_provisioner.infrastructure.container import Container
from gpu_provisioner.infrastructure.tracing import shutdown_tracing


def main(config: Optional[Config] = None) -> int:
    container = Container.create(config)
    logger = container.logger

    try:
        result = container.provisioner().run()
    except RebootScheduled as e:
        logger.info("reboot_scheduled", kernel=e.kernel_version)
        return 0
    except ProvisioningError as e:
        logger.error("provisioning_failed", error=str(e), error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        textfile = container.config.observability.metrics_textfile
        if textfile is not None:
            container.metrics.write_textfile(textfile)
        shutdown_tracing()

    logger.info(
        "provisioning_succeeded",
        platform=str(result.platform),
        partitioned=result.topology.partitioned,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
