import asyncio
import json
import sys
import logging

from saml_federation.application.verification_service import VerificationService
from saml_federation.config import get_settings
from saml_federation.domain.exceptions import InvalidSettingsException
from saml_federation.infrastructure.acl import StackOutputsTranslator
from saml_federation.infrastructure.hosted_ui_client import HostedUiClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

async def main():
    try:
        settings = get_settings()
    except InvalidSettingsException as e:
        logger.error(f"Invalid deployment settings: {e}")
        sys.exit(1)

    # Written by `cdk deploy --outputs-file outputs.json`
    outputs_file = settings.outputs_file
    try:
        with open(outputs_file, encoding="utf-8") as f:
            raw_outputs = json.load(f)
        endpoints = StackOutputsTranslator.to_domain(raw_outputs, settings.stack_name)
    except (OSError, ValueError) as e:
        logger.error(f"Cannot read authorize URLs from {outputs_file}: {e}")
        sys.exit(1)

    verification_service = VerificationService(hosted_ui_client=HostedUiClient())

    try:
        results = await verification_service.verify(endpoints)
    except KeyboardInterrupt:
        logger.info("Verification interrupted by user. Exiting gracefully.")
        return
    except Exception as e:
        logger.exception(f"An unexpected error occurred: {e}")
        sys.exit(1)

    if not all(results.values()):
        sys.exit(1)

if __name__ == "__main__":
    asyncio.run(main())
