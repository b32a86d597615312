import sys
import logging
from aws_cdk import App

from saml_federation.application.blueprint_builder import build_blueprint
from saml_federation.config import get_settings
from saml_federation.domain.exceptions import BlueprintException
from saml_federation.infrastructure.stack import FederationPocStack

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

def main():
    # Everything is validated before the first construct is created
    try:
        settings = get_settings()
        blueprint = build_blueprint(settings)
    except BlueprintException as e:
        logger.error(f"Invalid deployment declaration: {e}")
        sys.exit(1)

    app = App()
    try:
        FederationPocStack(app, blueprint, image_directory=settings.image_directory)
        app.synth()
    except Exception as e:
        logger.exception(f"An unexpected error occurred while synthesizing: {e}")
        sys.exit(1)

    logger.info(f"Synthesized stack '{blueprint.stack_name}' for {blueprint.account}/{blueprint.region}.")

if __name__ == "__main__":
    main()
