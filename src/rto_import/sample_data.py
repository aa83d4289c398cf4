"""Sample data for the operator demo.
Author: Sunil Paudel
"""

SAMPLE_PASTE_TEXT = """qualification_code,Extra Info for names,unit_code,unit_name,unit_description,unit_type,cluster_info,Variation,Required
BSB30120,Certificate III in Business,BSBWHS311,Assist with maintaining workplace safety,"Participate in WHS, including hazard reporting",Core,,,
BSB30120,Certificate III in Business,BSBSUS211,Participate in sustainable work practices,Follow sustainable work practices,Core,,,
BSB30120,Certificate III in Business,BSBXCM301,Engage in workplace communication,"Communicate with colleagues, customers and stakeholders",Elective,Group A,Administration,Y
BSB30120,Certificate III in Business,BSBTEC303,Create electronic presentations,Design and produce electronic presentations,Elective,Group A,ALL,
BSB30120,Certificate III in Business,BSBOPS304,Deliver and monitor a service to customers,Provide customer service,Elective,Group B,Customer Engagement; Administration,
"""
