"""GatoRyde: student carpool matching, booking lifecycle and notifications."""
