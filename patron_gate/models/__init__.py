from .credentials import CredentialRecord, MembershipUpdate, ProfileFields, TokenTriple

__all__ = ["CredentialRecord", "MembershipUpdate", "ProfileFields", "TokenTriple"]
