"""
Prompts for transcript analysis
"""

SYSTEM_INSTRUCTIONS = """You are an expert call analyst for an auto repair shop.
You read phone call transcripts and extract structured business signals.
Respond ONLY with a single valid JSON object. No markdown, no commentary."""

ANALYSIS_PROMPT = """Analyze the following phone call transcript.

TRANSCRIPT:
\"\"\"
{transcript}
\"\"\"

Tasks:
1. Rate the call 0-10 from a business perspective (10 = booked appointment or sale, 1 = angry customer or lost lead).
2. Summarize the call in 1-2 sentences.
3. List specific next steps (e.g. "Send intake form", "Follow up on Tuesday").
4. Extract customer info: name, vehicle details, service needed.
5. Suggest tags for the customer profile (e.g. "New Customer", "Urgent", "Brakes", "Price Shopper").
6. Classify the sales pipeline: deal status, title, estimated value, priority.

JSON format:
{{
  "rating": 8,
  "summary": "Customer called about brake noise...",
  "nextActions": ["Send quote", "Call back tomorrow"],
  "tags": ["New Customer", "Brakes"],
  "customerInfo": {{
    "firstName": "John",
    "lastName": "Doe",
    "vehicleYear": "2020",
    "vehicleMake": "Toyota",
    "vehicleModel": "Camry",
    "serviceRequested": "Brake check",
    "confidence": "high"
  }},
  "pipeline": {{
    "status": "booked",
    "title": "Brake Job - 2020 Toyota Camry",
    "dealValue": 450,
    "priority": "high",
    "confidence": 90
  }}
}}

Guidelines:
- pipeline.status is one of: new_inquiry, quote_sent, follow_up, booked, lost.
  booked = appointment scheduled; quote_sent = price discussed;
  new_inquiry = just asking questions; lost = customer hung up or said no.
- pipeline.priority is one of: high, medium, low.
- pipeline.confidence is 0-100: how sure you are this call is a real sales opportunity.
- dealValue is an estimate from the service (brakes ~400, oil change ~50, engine ~2000), 0 if unknown.
- Deal title format: "<Service> - <Vehicle>".
- Use null for anything the caller did not say. Never guess names."""


def build_messages(transcript_text: str) -> list:
    """Chat messages for one analysis request"""
    return [
        {"role": "system", "content": SYSTEM_INSTRUCTIONS},
        {"role": "user", "content": ANALYSIS_PROMPT.format(transcript=transcript_text)}
    ]
