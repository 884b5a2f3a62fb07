"""Unit tests for PKCE verification."""

import pytest

# RFC 7636 appendix B.
VERIFIER = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
CHALLENGE = "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"


class TestComputeChallenge:
    def test_rfc_vector(self):
        from auth_provider.idp.pkce import compute_s256_challenge

        assert compute_s256_challenge(VERIFIER) == CHALLENGE

    def test_no_padding(self):
        from auth_provider.idp.pkce import compute_s256_challenge

        challenge = compute_s256_challenge("x" * 64)
        assert "=" not in challenge
        assert "+" not in challenge and "/" not in challenge


class TestVerifyCodeVerifier:
    def test_valid_verifier(self):
        from auth_provider.idp.pkce import verify_code_verifier

        assert verify_code_verifier(CHALLENGE, "S256", VERIFIER) is True

    def test_wrong_verifier(self):
        from auth_provider.idp.pkce import verify_code_verifier

        assert verify_code_verifier(CHALLENGE, "S256", VERIFIER + "x") is False

    def test_missing_verifier(self):
        from auth_provider.idp.pkce import verify_code_verifier

        assert verify_code_verifier(CHALLENGE, "S256", None) is False
        assert verify_code_verifier(CHALLENGE, "S256", "") is False

    @pytest.mark.parametrize("method", ["plain", "s256", "", None, "S512"])
    def test_unsupported_method_fails_closed(self, method):
        from auth_provider.idp.pkce import verify_code_verifier

        assert verify_code_verifier(CHALLENGE, method, VERIFIER) is False
        # Even a verifier equal to the challenge must not pass as "plain".
        assert verify_code_verifier(CHALLENGE, method, CHALLENGE) is False

    def test_non_ascii_verifier(self):
        from auth_provider.idp.pkce import verify_code_verifier

        assert verify_code_verifier(CHALLENGE, "S256", "vérifier") is False
