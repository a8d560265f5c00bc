# DeployGate Upload - GitHub Action Package
#
# This package contains the 4-stage upload pipeline that runs as a step
# inside a GitHub Actions job. Each stage is in its own file following the
# one-function-per-file architecture pattern.
#
# The pipeline is orchestrated by upload_pipeline_main.py. It reads the
# action inputs from the environment, uploads the app binary to DeployGate,
# writes the step outputs, and (on pull request events) keeps a single status
# comment up to date on the pull request.
#
# Stage flow:
#   1. Validate Inputs -> 2. Upload Binary -> 3. Report Results
#   -> 4. Reconcile PR Comment

__version__ = "1.1.0"
