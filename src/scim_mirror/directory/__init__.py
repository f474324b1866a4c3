"""Reading users, groups and memberships from the SCIM identity directory."""
