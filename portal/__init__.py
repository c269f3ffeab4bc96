"""BFEAI accounts portal: SSO code exchange and cross-domain session cookies."""
