"""AWS Lambda triggers attached to the Cognito user pool."""
